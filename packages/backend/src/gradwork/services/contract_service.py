"""Contract service — who may chat about which contract.

Learn: Chat access is decided here and nowhere else. A user may open a
contract's chat (WebSocket or REST history) only if:
1. the contract exists                         → else ContractNotFoundError (404)
2. its status is "accepted"                    → else AuthorizationError (403)
3. the user is the client or the gig's owner   → else AuthorizationError (403)
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from gradwork.chat.errors import (
    AuthorizationError,
    ContractNotFoundError,
    PersistenceError,
)
from gradwork.db.models import CONTRACT_ACCEPTED, Contract, Gig, User


@dataclass
class ChatContract:
    """An accepted contract seen from one party's side."""

    contract: Contract
    other_user_id: uuid.UUID
    other_user: Optional[User] = None


def parties(contract: Contract) -> tuple[uuid.UUID, uuid.UUID]:
    """(client_id, freelancer_id) — the gig relationship must be loaded."""
    return contract.user_id, contract.gig.user_id


class ContractService:
    """Contract lookups and the chat authorization check."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_contract(self, contract_id: uuid.UUID) -> Optional[Contract]:
        result = await self.db.execute(
            select(Contract)
            .options(selectinload(Contract.gig))
            .where(Contract.id == contract_id)
        )
        return result.scalars().first()

    async def authorize_chat(
        self,
        contract_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> Contract:
        """Return the contract if `user_id` may chat in it, else raise.

        Raises:
            ContractNotFoundError: unknown contract
            AuthorizationError: not accepted, or user is not a party
            PersistenceError: the lookup itself failed
        """
        try:
            contract = await self.get_contract(contract_id)
        except (SQLAlchemyError, OSError) as e:
            raise PersistenceError(f"Database error: {e}") from e
        if not contract:
            raise ContractNotFoundError(f"Contract {contract_id} not found")

        if contract.status != CONTRACT_ACCEPTED:
            raise AuthorizationError("Chat is only available for accepted contracts")

        if user_id not in parties(contract):
            raise AuthorizationError("You are not a party to this contract")

        return contract

    async def list_chat_contracts(self, user_id: uuid.UUID) -> list[ChatContract]:
        """Accepted contracts where the user is the client or the freelancer.

        Learn: One query for the contracts (joined to their gig), one for
        the other parties' profiles — no per-contract round trips.
        """
        result = await self.db.execute(
            select(Contract)
            .join(Gig, Contract.gig_id == Gig.id)
            .options(selectinload(Contract.gig))
            .where(
                Contract.status == CONTRACT_ACCEPTED,
                or_(Contract.user_id == user_id, Gig.user_id == user_id),
            )
        )
        contracts = list(result.scalars().unique().all())

        chats = []
        for contract in contracts:
            client_id, freelancer_id = parties(contract)
            other = freelancer_id if client_id == user_id else client_id
            chats.append(ChatContract(contract=contract, other_user_id=other))

        other_ids = {chat.other_user_id for chat in chats}
        if other_ids:
            users = await self.db.execute(select(User).where(User.id.in_(other_ids)))
            by_id = {u.id: u for u in users.scalars().all()}
            for chat in chats:
                chat.other_user = by_id.get(chat.other_user_id)

        return chats


class ChatContractAuthorizer:
    """authorize_chat on a short-lived session of its own.

    Learn: The WebSocket handler outlives any request-scoped session, so
    the handshake check borrows a session and gives it straight back
    instead of pinning a pooled connection for the whole chat.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def authorize_chat(
        self,
        contract_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> Contract:
        async with self.session_factory() as db:
            return await ContractService(db).authorize_chat(contract_id, user_id)


def get_chat_authorizer() -> ChatContractAuthorizer:
    """FastAPI dependency for WebSocket sessions."""
    from gradwork.db.engine import async_session_factory

    return ChatContractAuthorizer(async_session_factory)
