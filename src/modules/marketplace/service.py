"""
Marketplace Service - Buy-Now Listings with Escrow
==================================================

Purpose
-------
Lets users sell items or recipe charges to each other at a fixed price.
Listed goods leave the seller's inventory into an escrow record and stay
there until the listing is bought or canceled.

Lifecycle
---------
    live --buy--> paid        (terminal)
    live --cancel--> canceled (terminal)

Any operation on a listing that is not `live` fails with
`ListingNotLiveError`. A live listing always has exactly one escrow record;
leaving `live` deletes it in the same transaction.

Money
-----
- Listing fee: floor(price / listing_fee_divisor), charged to the seller up
  front (SALE_LIST_FEE) and never refunded. A zero fee writes no entry.
- Sale: the buyer pays the full price (SALE_BUY); the seller receives
  price - floor(fee_bps * price / 10000) (SALE_EARN). The difference is
  retained by the house. Both entries reference `listing:<id>`.
- `fee_bps` is copied from config onto the listing at creation; settlement
  uses the listing's value.

Concurrency
-----------
Lock order: listing row, then user rows in ascending id order, then
holdings. The transition out of `live` is a guarded
`UPDATE ... WHERE status = 'live'`; when it matches no row the operation
fails with `ListingNotLiveError`, so a racing buy and cancel resolve to
exactly one winner.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.base import utc_now
from src.core.database.service import DatabaseService
from src.core.logging.logger import get_logger
from src.core.validation.input_validator import InputValidator
from src.database.models.economy import EscrowRecord, Listing
from src.database.models.enums import LedgerReason, ListingKind, ListingStatus
from src.modules.shared import constants as C
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import (
    EscrowIntegrityError,
    ForbiddenError,
    InsufficientFundsError,
    InvalidPriceError,
    ListingNotLiveError,
    NotFoundError,
    SelfPurchaseError,
    ValidationError,
)
from src.modules.shared.formulas import listing_end_time, listing_fee, sale_fee

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus
    from src.modules.catalog.service import CatalogService
    from src.modules.inventory.service import InventoryService
    from src.modules.ledger.service import LedgerService


# ============================================================================
# Repositories
# ============================================================================


class ListingRepository(BaseRepository[Listing]):
    """Repository for Listing."""

    pass


class EscrowRepository(BaseRepository[EscrowRecord]):
    """Repository for EscrowRecord."""

    pass


# ============================================================================
# MarketplaceService
# ============================================================================


class MarketplaceService(BaseService):
    """
    Buy-now marketplace.

    Public Methods
    --------------
    - create_listing() / create_listing_by_code() -> List goods for sale
    - cancel_listing() -> Seller withdraws a live listing
    - buy_listing() -> Buyer settles a live listing
    - get_listing() -> One listing
    - list_live_listings() -> Live listings ending soonest first
    - list_seller_listings() -> A seller's listings, newest first
    - audit_escrow() -> Live listings without escrow and orphaned escrow
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        catalog: CatalogService,
        ledger: LedgerService,
        inventory: InventoryService,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._catalog = catalog
        self._ledger = ledger
        self._inventory = inventory

        self._listing_repo = ListingRepository(
            model_class=Listing,
            logger=get_logger(f"{__name__}.ListingRepository"),
        )
        self._escrow_repo = EscrowRepository(
            model_class=EscrowRecord,
            logger=get_logger(f"{__name__}.EscrowRepository"),
        )

    # ========================================================================
    # PUBLIC API - Create
    # ========================================================================

    async def create_listing(
        self,
        seller_id: int,
        kind: str,
        target_id: int,
        qty: int,
        price_silver: int,
        session: Optional[AsyncSession] = None,
    ) -> Dict[str, Any]:
        """
        List `qty` of an item or recipe at a buy-now price.

        Returns:
            {"listing": {...}, "listing_fee_silver": int, "balance_silver": int}

        Raises:
            ValidationError: Bad kind or qty
            InvalidPriceError: price_silver is not a positive integer
            NotFoundError: Unknown target or seller
            InsufficientFundsError: Balance below the listing fee
            InsufficientStockError: Seller holds fewer than qty
        """
        seller_id = InputValidator.validate_id(seller_id, "seller_id")
        kind = ListingKind(InputValidator.validate_choice(kind, "kind", [k.value for k in ListingKind]))
        target_id = InputValidator.validate_id(target_id, "target_id")
        qty = InputValidator.validate_positive_integer(qty, "qty")
        price_silver = self._validate_price(price_silver)

        item_id = target_id if kind is ListingKind.ITEM else None
        recipe_id = target_id if kind is ListingKind.RECIPE else None
        target = self._catalog.describe_target(item_id, recipe_id)
        if target is None:
            raise NotFoundError("Item" if kind is ListingKind.ITEM else "Recipe", target_id)

        fee = listing_fee(
            price_silver,
            self.get_config_int("economy.marketplace.listing_fee_divisor", C.LISTING_FEE_DIVISOR),
        )
        fee_bps = self.get_config_int("economy.marketplace.fee_bps", C.SALE_FEE_BPS)
        duration = self.get_config_int(
            "economy.marketplace.listing_duration_minutes", C.LISTING_DURATION_MINUTES
        )

        self.log_operation(
            "create_listing",
            user_id=seller_id,
            kind=kind.value,
            target_code=target.code,
            qty=qty,
            price_silver=price_silver,
            listing_fee_silver=fee,
            has_session=session is not None,
        )

        async def _do_create(tx_session: AsyncSession) -> Dict[str, Any]:
            seller = await self._ledger.lock_user(tx_session, seller_id)

            if seller.balance_silver < fee:
                raise InsufficientFundsError(
                    required=fee, current=seller.balance_silver, user_id=seller_id
                )

            await self._inventory.debit(
                tx_session, seller_id, item_id=item_id, recipe_id=recipe_id, qty=qty
            )

            start = utc_now()
            listing = self._listing_repo.add(
                tx_session,
                Listing(
                    seller_user_id=seller_id,
                    kind=kind.value,
                    item_id=item_id,
                    recipe_id=recipe_id,
                    qty=qty,
                    price_silver=price_silver,
                    fee_bps=fee_bps,
                    status=ListingStatus.LIVE.value,
                    start_time=start,
                    end_time=listing_end_time(start, duration),
                ),
            )
            await tx_session.flush()

            self._escrow_repo.add(
                tx_session,
                EscrowRecord(
                    listing_id=listing.id,
                    owner_user_id=seller_id,
                    kind=kind.value,
                    item_id=item_id,
                    recipe_id=recipe_id,
                    qty=qty,
                ),
            )

            if fee > 0:
                await self._ledger.apply_delta(
                    tx_session, seller, -fee, LedgerReason.SALE_LIST_FEE, f"listing:{listing.id}"
                )
            await tx_session.flush()

            return {
                "listing": self._serialize(listing),
                "listing_fee_silver": fee,
                "balance_silver": seller.balance_silver,
            }

        if session is not None:
            return await _do_create(session)

        async with DatabaseService.get_transaction() as tx_session:
            result = await _do_create(tx_session)

        await self.emit_event("marketplace.listing_created", result)
        self.log.info(
            f"Listing created: {result['listing']['id']}",
            extra={
                "user_id": seller_id,
                "listing_id": result["listing"]["id"],
                "target_code": target.code,
                "qty": qty,
                "price_silver": price_silver,
                "listing_fee_silver": fee,
            },
        )
        return result

    async def create_listing_by_code(
        self,
        seller_id: int,
        code: str,
        qty: int,
        price_silver: int,
        session: Optional[AsyncSession] = None,
    ) -> Dict[str, Any]:
        """
        `create_listing` addressed by catalog code ("STONE", "R_GLASS").

        Raises:
            NotFoundError: Unknown code
        """
        found = self._catalog.find_by_code(code)
        if found is None:
            raise NotFoundError("CatalogEntry", code, error_code="UNKNOWN_CODE")
        kind, entry = found
        return await self.create_listing(
            seller_id, kind.value, entry.id, qty, price_silver, session=session
        )

    # ========================================================================
    # PUBLIC API - Cancel
    # ========================================================================

    async def cancel_listing(
        self,
        requester_id: int,
        listing_id: int,
        session: Optional[AsyncSession] = None,
    ) -> Dict[str, Any]:
        """
        Withdraw a live listing and return the escrowed goods to the seller.
        The listing fee is not refunded.

        Raises:
            NotFoundError: Unknown listing
            ForbiddenError: Requester is not the seller
            ListingNotLiveError: Listing already paid or canceled
            EscrowIntegrityError: Live listing without escrow
        """
        requester_id = InputValidator.validate_id(requester_id, "requester_id")
        listing_id = InputValidator.validate_id(listing_id, "listing_id")

        self.log_operation(
            "cancel_listing",
            user_id=requester_id,
            listing_id=listing_id,
            has_session=session is not None,
        )

        async def _do_cancel(tx_session: AsyncSession) -> Dict[str, Any]:
            listing = await self._lock_listing(tx_session, listing_id)

            if listing.seller_user_id != requester_id:
                raise ForbiddenError("cancel listing", requester_id, listing_id)
            if listing.status != ListingStatus.LIVE.value:
                raise ListingNotLiveError(listing_id, listing.status)

            escrow = await self._require_escrow(tx_session, listing_id)
            await self._ledger.lock_user(tx_session, listing.seller_user_id)

            await self._inventory.credit(
                tx_session,
                listing.seller_user_id,
                item_id=escrow.item_id,
                recipe_id=escrow.recipe_id,
                qty=escrow.qty,
            )
            await self._transition(
                tx_session,
                listing,
                status=ListingStatus.CANCELED.value,
                settled_at=utc_now(),
            )
            await self._escrow_repo.delete(tx_session, escrow)
            await tx_session.flush()

            return {
                "listing": self._serialize(listing),
                "returned_qty": escrow.qty,
            }

        if session is not None:
            return await _do_cancel(session)

        async with DatabaseService.get_transaction() as tx_session:
            result = await _do_cancel(tx_session)

        await self.emit_event("marketplace.listing_canceled", result)
        self.log.info(
            f"Listing canceled: {listing_id}",
            extra={"user_id": requester_id, "listing_id": listing_id},
        )
        return result

    # ========================================================================
    # PUBLIC API - Buy
    # ========================================================================

    async def buy_listing(
        self,
        buyer_id: int,
        listing_id: int,
        session: Optional[AsyncSession] = None,
    ) -> Dict[str, Any]:
        """
        Buy a live listing at its price.

        Returns:
            {
                "listing": {...},
                "buyer_id": int,
                "seller_id": int,
                "price_silver": int,
                "fee_silver": int,
                "net_silver": int,
                "buyer_balance_silver": int,
                "seller_balance_silver": int,
            }

        Raises:
            NotFoundError: Unknown listing or buyer
            ListingNotLiveError: Listing already paid or canceled
            InvalidPriceError: Listing has no positive price
            SelfPurchaseError: Buyer is the seller
            InsufficientFundsError: Buyer balance below price
            EscrowIntegrityError: Live listing without escrow
        """
        buyer_id = InputValidator.validate_id(buyer_id, "buyer_id")
        listing_id = InputValidator.validate_id(listing_id, "listing_id")

        self.log_operation(
            "buy_listing",
            user_id=buyer_id,
            listing_id=listing_id,
            has_session=session is not None,
        )

        async def _do_buy(tx_session: AsyncSession) -> Dict[str, Any]:
            listing = await self._lock_listing(tx_session, listing_id)

            if listing.status != ListingStatus.LIVE.value:
                raise ListingNotLiveError(listing_id, listing.status)
            if listing.price_silver is None or listing.price_silver <= 0:
                raise InvalidPriceError(listing.price_silver)
            if listing.seller_user_id == buyer_id:
                raise SelfPurchaseError(listing_id, buyer_id)

            escrow = await self._require_escrow(tx_session, listing_id)

            users = await self._ledger.lock_users(
                tx_session, [buyer_id, listing.seller_user_id]
            )
            buyer = users[buyer_id]
            seller = users[listing.seller_user_id]

            price = listing.price_silver
            if buyer.balance_silver < price:
                raise InsufficientFundsError(
                    required=price, current=buyer.balance_silver, user_id=buyer_id
                )

            fee = sale_fee(price, listing.fee_bps)
            net = price - fee
            ref = f"listing:{listing.id}"

            await self._ledger.apply_delta(tx_session, buyer, -price, LedgerReason.SALE_BUY, ref)
            await self._ledger.apply_delta(tx_session, seller, net, LedgerReason.SALE_EARN, ref)

            await self._inventory.credit(
                tx_session,
                buyer_id,
                item_id=escrow.item_id,
                recipe_id=escrow.recipe_id,
                qty=escrow.qty,
            )
            await self._transition(
                tx_session,
                listing,
                status=ListingStatus.PAID.value,
                winner_user_id=buyer_id,
                sold_price_silver=price,
                settled_at=utc_now(),
            )
            await self._escrow_repo.delete(tx_session, escrow)
            await tx_session.flush()

            return {
                "listing": self._serialize(listing),
                "buyer_id": buyer_id,
                "seller_id": seller.id,
                "price_silver": price,
                "fee_silver": fee,
                "net_silver": net,
                "buyer_balance_silver": buyer.balance_silver,
                "seller_balance_silver": seller.balance_silver,
            }

        if session is not None:
            return await _do_buy(session)

        async with DatabaseService.get_transaction() as tx_session:
            result = await _do_buy(tx_session)

        await self.emit_event("marketplace.listing_sold", result)
        self.log.info(
            f"Listing sold: {listing_id}",
            extra={
                "user_id": buyer_id,
                "listing_id": listing_id,
                "seller_id": result["seller_id"],
                "price_silver": result["price_silver"],
                "fee_silver": result["fee_silver"],
                "net_silver": result["net_silver"],
            },
        )
        return result

    # ========================================================================
    # PUBLIC API - Reads
    # ========================================================================

    async def get_listing(self, listing_id: int) -> Dict[str, Any]:
        listing_id = InputValidator.validate_id(listing_id, "listing_id")
        async with DatabaseService.get_session() as session:
            listing = await self._listing_repo.get(session, listing_id)
            if listing is None:
                raise NotFoundError("Listing", listing_id)
            return self._serialize(listing)

    async def list_live_listings(self, limit: int = 100, offset: int = 0) -> List[Dict[str, Any]]:
        """Live listings ordered by end_time, then id."""
        limit = InputValidator.validate_positive_integer(limit, "limit", max_value=500)
        offset = InputValidator.validate_non_negative_integer(offset, "offset")

        async with DatabaseService.get_session() as session:
            listings = await self._listing_repo.find_many_where(
                session,
                Listing.status == ListingStatus.LIVE.value,
                order_by=[Listing.end_time, Listing.id],
                limit=limit,
                offset=offset,
            )
            return [self._serialize(listing) for listing in listings]

    async def list_seller_listings(self, seller_id: int) -> List[Dict[str, Any]]:
        """Every listing of a seller, newest first."""
        seller_id = InputValidator.validate_id(seller_id, "seller_id")

        async with DatabaseService.get_session() as session:
            listings = await self._listing_repo.find_many_where(
                session,
                Listing.seller_user_id == seller_id,
                order_by=[Listing.id.desc()],
            )
            return [self._serialize(listing) for listing in listings]

    async def audit_escrow(self, session: Optional[AsyncSession] = None) -> Dict[str, List[int]]:
        """
        Check the live-listing/escrow bijection.

        Returns:
            {"live_without_escrow": [listing ids],
             "escrow_without_live": [listing ids]}
        """

        async def _do_audit(read_session: AsyncSession) -> Dict[str, List[int]]:
            live_without_escrow = (
                await read_session.execute(
                    select(Listing.id)
                    .outerjoin(EscrowRecord, EscrowRecord.listing_id == Listing.id)
                    .where(Listing.status == ListingStatus.LIVE.value, EscrowRecord.id.is_(None))
                    .order_by(Listing.id)
                )
            ).scalars().all()

            escrow_without_live = (
                await read_session.execute(
                    select(EscrowRecord.listing_id)
                    .outerjoin(
                        Listing,
                        and_(
                            Listing.id == EscrowRecord.listing_id,
                            Listing.status == ListingStatus.LIVE.value,
                        ),
                    )
                    .where(Listing.id.is_(None))
                    .order_by(EscrowRecord.listing_id)
                )
            ).scalars().all()

            return {
                "live_without_escrow": list(live_without_escrow),
                "escrow_without_live": list(escrow_without_live),
            }

        if session is not None:
            report = await _do_audit(session)
        else:
            async with DatabaseService.get_session() as read_session:
                report = await _do_audit(read_session)

        if report["live_without_escrow"] or report["escrow_without_live"]:
            self.log.critical("Escrow audit found mismatches", extra=report)
        return report

    # ========================================================================
    # INTERNALS
    # ========================================================================

    @staticmethod
    def _validate_price(price_silver: Any) -> int:
        try:
            price = InputValidator.validate_integer(price_silver, "price_silver")
        except ValidationError as exc:
            raise InvalidPriceError(price_silver) from exc
        if price <= 0:
            raise InvalidPriceError(price_silver)
        return price

    async def _lock_listing(self, session: AsyncSession, listing_id: int) -> Listing:
        listing = await self._listing_repo.get(session, listing_id, for_update=True)
        if listing is None:
            raise NotFoundError("Listing", listing_id)
        return listing

    async def _require_escrow(self, session: AsyncSession, listing_id: int) -> EscrowRecord:
        # The listing row lock guards its escrow record
        escrow = await self._escrow_repo.find_one_where(
            session, EscrowRecord.listing_id == listing_id
        )
        if escrow is None:
            self.log.critical(
                "Live listing has no escrow record",
                extra={"listing_id": listing_id},
            )
            raise EscrowIntegrityError(listing_id)
        return escrow

    async def _transition(self, session: AsyncSession, listing: Listing, **values: Any) -> None:
        """Move a listing out of `live`; fails if it is no longer live."""
        result = await session.execute(
            update(Listing)
            .where(Listing.id == listing.id, Listing.status == ListingStatus.LIVE.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ListingNotLiveError(listing.id)
        await session.refresh(listing)

    def _serialize(self, listing: Listing) -> Dict[str, Any]:
        target = self._catalog.describe_target(listing.item_id, listing.recipe_id)
        return {
            "id": listing.id,
            "seller_user_id": listing.seller_user_id,
            "kind": listing.kind,
            "item_id": listing.item_id,
            "recipe_id": listing.recipe_id,
            "code": target.code if target else None,
            "name": target.name if target else None,
            "qty": listing.qty,
            "price_silver": listing.price_silver,
            "fee_bps": listing.fee_bps,
            "status": listing.status,
            "start_time": listing.start_time.isoformat() if listing.start_time else None,
            "end_time": listing.end_time.isoformat() if listing.end_time else None,
            "winner_user_id": listing.winner_user_id,
            "sold_price_silver": listing.sold_price_silver,
            "settled_at": listing.settled_at.isoformat() if listing.settled_at else None,
        }
