import asyncio
import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import Iterable, Optional, Sequence
from sqlalchemy import and_, or_, select, update, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from hotwallet_refill.core.errors import LedgerError
from hotwallet_refill.models.asset import Asset
from hotwallet_refill.models.blockchain import Blockchain
from hotwallet_refill.models.wallet import Wallet
from hotwallet_refill.models.refill_transaction import (
    RefillTransaction,
    RefillStatus,
    ACTIVE_STATUSES,
    ALLOWED_TRANSITIONS,
    utcnow,
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"status", "provider_tx_id", "provider_status", "tx_hash", "provider_data", "message"}


class DuplicateRefillError(LedgerError):
    code = "TRANSACTION_EXISTS"

    def __init__(self, refill_request_id: str):
        super().__init__(f"Refill transaction {refill_request_id} already exists")
        self.refill_request_id = refill_request_id


class Ledger:
    """Durable store of blockchains, wallets, assets and refill transactions.

    Every method runs in its own short session, except inside ``asset_lock``:
    there all calls from the locking task share the session that holds the
    row lock, so a request never needs a second pooled connection.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory
        self._asset_locks: dict[str, asyncio.Lock] = {}
        bind = session_factory.kw.get("bind")
        # SQLite has no row locks and shares one connection in memory
        self.row_locks = bind is not None and bind.dialect.name != "sqlite"
        self._locked_session: ContextVar[Optional[AsyncSession]] = ContextVar("locked_session", default=None)

    @asynccontextmanager
    async def _session(self):
        db = self._locked_session.get()
        if db is not None:
            yield db
            return
        async with self.session_factory() as db:
            yield db

    # -- reference data -----------------------------------------------------

    async def get_blockchain_by_name(self, name: str) -> Optional[Blockchain]:
        async with self._session() as db:
            return await db.scalar(
                select(Blockchain).where(Blockchain.name == name, Blockchain.is_active == True)
            )

    async def get_asset_by_id(self, asset_id: int) -> Optional[Asset]:
        async with self._session() as db:
            return await db.get(Asset, asset_id)

    async def get_asset_by_symbol_and_blockchain(self, symbol: str, blockchain_id: int) -> Optional[Asset]:
        async with self._session() as db:
            return await db.scalar(
                select(Asset).where(
                    Asset.symbol == symbol.upper(),
                    Asset.blockchain_id == blockchain_id,
                    Asset.is_active == True,
                )
            )

    async def get_wallet_by_address(self, address: str) -> Optional[Wallet]:
        async with self._session() as db:
            return await db.scalar(select(Wallet).where(Wallet.address == address))

    # -- refill transactions ------------------------------------------------

    async def create_refill_transaction(self, **fields) -> RefillTransaction:
        tx = RefillTransaction(**fields)
        async with self._session() as db:
            db.add(tx)
            try:
                await db.commit()
            except IntegrityError as e:
                await db.rollback()
                existing = await db.get(RefillTransaction, fields.get("refill_request_id"))
                if existing is not None:
                    raise DuplicateRefillError(fields["refill_request_id"]) from e
                raise LedgerError(str(e)) from e
            except Exception:
                # The locked session is reused by the fallback write
                await db.rollback()
                raise
            await db.refresh(tx)
        logger.info(f"Refill transaction {tx.refill_request_id} recorded with status {tx.status}")
        return tx

    async def update_refill_transaction(self, refill_request_id: str, **changes) -> bool:
        """Apply changes to a row; status may only move forward.

        The transition check is part of the UPDATE's WHERE clause so two
        concurrent writers cannot regress a row. Returns False when nothing was
        updated (row missing or transition not allowed).
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")

        stmt = update(RefillTransaction).where(RefillTransaction.refill_request_id == refill_request_id)
        if "status" in changes:
            new_status = RefillStatus(changes["status"])
            changes["status"] = new_status.value
            allowed_from = [s.value for s, targets in ALLOWED_TRANSITIONS.items() if new_status in targets]
            stmt = stmt.where(RefillTransaction.status.in_(allowed_from))
        stmt = stmt.values(**changes, updated_at=utcnow())

        async with self._session() as db:
            result = await db.execute(stmt)
            await db.commit()
        if result.rowcount == 0:
            logger.warning(f"Refill transaction {refill_request_id} not updated with {sorted(changes)}")
            return False
        return True

    async def get_refill_transaction_by_request_id(self, refill_request_id: str) -> Optional[RefillTransaction]:
        async with self._session() as db:
            return await db.get(RefillTransaction, refill_request_id)

    async def get_pending_transaction_by_asset_id(self, asset_id: int) -> Optional[RefillTransaction]:
        async with self._session() as db:
            return await db.scalar(
                select(RefillTransaction).where(
                    RefillTransaction.asset_id == asset_id,
                    RefillTransaction.status.in_([s.value for s in ACTIVE_STATUSES]),
                ).order_by(RefillTransaction.created_at.desc()).limit(1)
            )

    async def get_last_successful_refill_by_asset_id(self, asset_id: int) -> Optional[RefillTransaction]:
        async with self._session() as db:
            return await db.scalar(
                select(RefillTransaction).where(
                    RefillTransaction.asset_id == asset_id,
                    RefillTransaction.status == RefillStatus.COMPLETED.value,
                ).order_by(RefillTransaction.updated_at.desc()).limit(1)
            )

    async def get_transactions_by_status(
        self,
        statuses: Iterable,
        limit: int = 100,
        after: Optional[tuple[datetime, str]] = None,
    ) -> Sequence[RefillTransaction]:
        """Rows in any of ``statuses``, oldest first.

        ``after`` is the ``(created_at, refill_request_id)`` of the last row of
        the previous page; rows sort strictly after it.
        """
        if isinstance(statuses, (str, RefillStatus)):
            statuses = [statuses]
        values = [RefillStatus(s).value for s in statuses]
        stmt = select(RefillTransaction).where(RefillTransaction.status.in_(values))
        if after is not None:
            created_at, request_id = after
            stmt = stmt.where(or_(
                RefillTransaction.created_at > created_at,
                and_(
                    RefillTransaction.created_at == created_at,
                    RefillTransaction.refill_request_id > request_id,
                ),
            ))
        stmt = stmt.order_by(
            RefillTransaction.created_at.asc(), RefillTransaction.refill_request_id.asc()
        ).limit(limit)
        async with self._session() as db:
            rows = await db.scalars(stmt)
            return list(rows)

    # -- concurrency --------------------------------------------------------

    @asynccontextmanager
    async def asset_lock(self, chain_name: str, asset_symbol: str):
        """Serialize refill decisions for one asset.

        The asyncio lock covers requests inside this process; the row lock on
        the asset (``SELECT ... FOR NO KEY UPDATE``, skipped on SQLite) covers
        other processes sharing the database. Ledger calls made inside the
        block run on the locking session. The row lock lasts until the first
        commit there, which is the refill row insert.
        """
        lock_key = f"{chain_name.lower()}:{asset_symbol.upper()}"
        lock = self._asset_locks.setdefault(lock_key, asyncio.Lock())
        async with lock:
            if not self.row_locks:
                yield
                return
            async with self.session_factory() as db:
                await db.execute(
                    select(Asset.id)
                    .join(Blockchain, Asset.blockchain_id == Blockchain.id)
                    .where(Blockchain.name == chain_name.lower(), Asset.symbol == asset_symbol.upper())
                    .with_for_update(of=Asset, key_share=True)
                )
                token = self._locked_session.set(db)
                try:
                    yield
                    await db.commit()
                finally:
                    self._locked_session.reset(token)

    async def health_check(self) -> dict:
        async with self._session() as db:
            await db.execute(text("SELECT 1"))
        return {"status": "healthy"}
