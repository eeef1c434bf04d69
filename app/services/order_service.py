# app/services/order_service.py
import logging
import math
import secrets
import string
import time
import uuid
from datetime import date

from sqlmodel import Session

from app.core.config import get_settings
from app.core.errors import (
    InvalidTransitionError,
    OrderNotFoundError,
    ValidationFailedError,
)
from app.database import run_in_transaction
from app.models.order import Order, OrderItem
from app.models.user import User
from app.repositories.order_repo import OrderRepository
from app.schemas.order import (
    OrderCreate,
    OrderItemRead,
    OrderWithItemsRead,
)
from app.services.coupon_service import CouponService
from app.services.notification_service import NotificationService
from app.services.wallet_service import WalletService

settings = get_settings()
logger = logging.getLogger(__name__)

ORDER_STATUSES = ("Received", "Cooking", "OutForDelivery", "Delivered", "Cancelled")

# Forward-only lifecycle; enforced when ORDER_STRICT_TRANSITIONS is on.
ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    "Received": {"Cooking", "OutForDelivery", "Delivered", "Cancelled"},
    "Cooking": {"OutForDelivery", "Delivered", "Cancelled"},
    "OutForDelivery": {"Delivered", "Cancelled"},
    "Delivered": set(),
    "Cancelled": set(),
}

# Client-side totals may differ by rounding
MONEY_TOLERANCE = 0.01

_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def is_allowed_transition(current: str, new: str) -> bool:
    return current == new or new in ALLOWED_TRANSITIONS.get(current, set())


class OrderService:
    """
    Order placement and the order state machine.

    Responsibilities:
      - price the cart, validate + reserve the coupon and insert the order
        in one transaction
      - move orders between statuses
      - run the financial side effects of a transition exactly once:
          Delivered => earn coins   (guarded by coins_awarded)
          Cancelled => refund coins (guarded by coins_refunded)
      - queue customer / admin notifications in the outbox
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        coupon_service: CouponService,
        wallet_service: WalletService,
        notifier: NotificationService,
    ):
        self.order_repo = order_repo
        self.coupon_service = coupon_service
        self.wallet_service = wallet_service
        self.notifier = notifier

    # -------- Placement --------

    def place_order(
        self,
        session: Session,
        user_id: uuid.UUID | None,
        payload: OrderCreate,
        today: date | None = None,
    ) -> OrderWithItemsRead:
        """
        Create an order (status=Received).

        Steps, all inside one unit of work:
          1. Compute subtotal from items; cross-check the client's figure.
          2. If a coupon is given: validate against the subtotal, then
             reserve one use (conditional increment). Any failure aborts
             the whole placement.
          3. Compute final_total = max(subtotal - discount, 0).
          4. Insert order + items; capture coins behind a coin coupon.
          5. Queue notifications (admins + owner).
        """
        subtotal = round(sum(i.unit_price * i.quantity for i in payload.items), 2)
        if not math.isfinite(subtotal):
            raise ValidationFailedError("Order total is out of range")
        if payload.subtotal is not None and abs(payload.subtotal - subtotal) > MONEY_TOLERANCE:
            raise ValidationFailedError(
                f"Subtotal mismatch: items add up to {subtotal:.2f}"
            )

        def work() -> uuid.UUID:
            discount = 0.0
            coupon_code = None
            redeemed_coins = 0

            if payload.coupon_code:
                quote = self.coupon_service.validate(
                    session, payload.coupon_code, subtotal, user_id, today
                )
                self.coupon_service.reserve(session, quote.coupon)
                discount = quote.discount_amount
                coupon_code = quote.coupon.code
                redeemed_coins = quote.coupon.redeemed_coins

            if (
                payload.discount_amount is not None
                and abs(payload.discount_amount - discount) > MONEY_TOLERANCE
            ):
                raise ValidationFailedError(
                    f"Discount mismatch: coupon gives {discount:.2f}"
                )

            final_total = round(max(subtotal - discount, 0.0), 2)
            if (
                payload.final_total is not None
                and abs(payload.final_total - final_total) > MONEY_TOLERANCE
            ):
                raise ValidationFailedError(
                    f"Total mismatch: order total is {final_total:.2f}"
                )

            order = Order(
                order_number=self._new_order_number(session),
                user_id=user_id,
                customer_name=payload.customer_name,
                phone=payload.phone,
                address=payload.address,
                order_type=payload.order_type,
                meal_time=payload.meal_time,
                preferred_date=payload.preferred_date,
                instructions=payload.instructions,
                subtotal=subtotal,
                discount_amount=discount,
                final_total=final_total,
                coupon_code=coupon_code,
                status="Received",
                redeemed_coins=redeemed_coins,
            )
            order = self.order_repo.create_order(session, order)
            self.order_repo.create_items(
                session,
                [
                    OrderItem(
                        order_id=order.id,
                        name=item.name,
                        unit_price=item.unit_price,
                        quantity=item.quantity,
                    )
                    for item in payload.items
                ],
            )

            self.notifier.notify(
                session,
                "admins",
                "New Order Received",
                f"Order #{order.order_number} from {order.customer_name} ({final_total:.2f})",
                "/admin/orders",
            )
            if user_id is not None:
                self.notifier.notify_user(
                    session,
                    user_id,
                    "Order Placed",
                    f"Order #{order.order_number} has been received.",
                    "/account/orders",
                )
            return order.id

        order_id = run_in_transaction(session, work)
        order = self.order_repo.get_by_id(session, order_id)
        logger.info(
            "Order %s placed (subtotal=%s discount=%s final=%s coupon=%s)",
            order.order_number,
            order.subtotal,
            order.discount_amount,
            order.final_total,
            order.coupon_code,
        )
        return self._build_order_with_items_dto(
            order, self.order_repo.list_items_for_order(session, order.id)
        )

    def _new_order_number(self, session: Session) -> str:
        """<PREFIX>-<5 digits from the clock><4 random alnum>, unique."""
        while True:
            stamp = str(int(time.time() * 1000))[-5:]
            suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(4))
            number = f"{settings.ORDER_NUMBER_PREFIX}-{stamp}{suffix}"
            if not self.order_repo.number_exists(session, number):
                return number

    # -------- State machine --------

    def transition_status(
        self,
        session: Session,
        order_id: uuid.UUID,
        new_status: str,
    ) -> Order:
        """
        Persist `new_status` and run its side effects in the same unit of work.

        Each financial effect is claimed with a compare-and-swap on its
        order flag, so resubmitting the same status (sequentially or
        concurrently) never pays out twice.

        Transitions are permissive unless ORDER_STRICT_TRANSITIONS is set.
        """
        if new_status not in ORDER_STATUSES:
            raise ValidationFailedError(f"Unknown order status: {new_status}")

        def work() -> Order:
            order = self.order_repo.get_by_id(session, order_id)
            if not order:
                raise OrderNotFoundError()

            previous = order.status
            if settings.ORDER_STRICT_TRANSITIONS and not is_allowed_transition(
                previous, new_status
            ):
                raise InvalidTransitionError(
                    f"Invalid status transition: {previous} -> {new_status}"
                )

            self.order_repo.set_status(session, order.id, new_status)

            owner = order.user_id
            if owner is not None:
                if new_status == "Delivered":
                    self._award_coins(session, order, owner)
                elif new_status == "Cancelled" and order.redeemed_coins > 0:
                    self._refund_coins(session, order, owner)

                self.notifier.notify_user(
                    session,
                    owner,
                    f"Order {new_status}",
                    f"Order #{order.order_number} is now {new_status}.",
                    "/account/orders",
                )

            logger.info(
                "Order %s status %s -> %s", order.order_number, previous, new_status
            )
            return order

        order = run_in_transaction(session, work)
        session.refresh(order)
        return order

    def _award_coins(self, session: Session, order: Order, owner: uuid.UUID) -> None:
        if not self.order_repo.claim_flag(session, order.id, "coins_awarded"):
            return

        coins = self.wallet_service.earn_for_order(session, owner, order)
        if coins > 0:
            self.order_repo.set_coins_earned(session, order.id, coins)
            self.notifier.notify_user(
                session,
                owner,
                "Coins Earned!",
                f"You earned {coins} coins!",
                "/account/wallet",
            )

    def _refund_coins(self, session: Session, order: Order, owner: uuid.UUID) -> None:
        if not self.order_repo.claim_flag(session, order.id, "coins_refunded"):
            return

        self.wallet_service.refund(session, owner, order.redeemed_coins, order)
        self.notifier.notify_user(
            session,
            owner,
            "Coins Refunded",
            f"{order.redeemed_coins} coins refunded.",
            "/account/wallet",
        )

    # -------- Queries --------

    def list_user_orders(
        self,
        session: Session,
        user_id: uuid.UUID,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Order]:
        return self.order_repo.list_for_user(session, user_id, skip, limit)

    def get_user_order(
        self,
        session: Session,
        user_id: uuid.UUID,
        order_id: uuid.UUID,
    ) -> OrderWithItemsRead:
        """
        Single order for its owner; 404 for anyone else.
        """
        order = self.order_repo.get_by_id(session, order_id)
        if not order or order.user_id != user_id:
            raise OrderNotFoundError()

        items = self.order_repo.list_items_for_order(session, order.id)
        return self._build_order_with_items_dto(order, items)

    def list_all_orders(
        self,
        session: Session,
        skip: int = 0,
        limit: int = 50,
        status: str | None = None,
    ) -> list[Order]:
        return self.order_repo.list_all(session, skip, limit, status)

    def get_order_admin(
        self,
        session: Session,
        order_id: uuid.UUID,
    ) -> OrderWithItemsRead:
        order = self.order_repo.get_by_id(session, order_id)
        if not order:
            raise OrderNotFoundError()
        items = self.order_repo.list_items_for_order(session, order.id)
        return self._build_order_with_items_dto(order, items)

    def track_order(
        self,
        session: Session,
        order_number: str,
        viewer: User | None,
    ) -> OrderWithItemsRead:
        """
        Lookup by order number. Signed-in customers only see their own orders;
        guests track by number.
        """
        order = self.order_repo.get_by_number(session, order_number.strip().upper())
        if not order:
            raise OrderNotFoundError()

        if (
            viewer is not None
            and viewer.role != "admin"
            and order.user_id is not None
            and order.user_id != viewer.id
        ):
            raise OrderNotFoundError()

        items = self.order_repo.list_items_for_order(session, order.id)
        return self._build_order_with_items_dto(order, items)

    # -------- Helper DTO builder --------

    def _build_order_with_items_dto(
        self,
        order: Order,
        items: list[OrderItem],
    ) -> OrderWithItemsRead:
        item_dtos = [
            OrderItemRead(
                id=it.id,
                name=it.name,
                unit_price=it.unit_price,
                quantity=it.quantity,
                line_total=round(it.unit_price * it.quantity, 2),
            )
            for it in items
        ]
        return OrderWithItemsRead(**order.model_dump(), items=item_dtos)
