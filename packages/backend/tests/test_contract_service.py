"""Contract authorization tests — who may open which chat."""

import uuid

import pytest

from chat_fakes import unreachable_db
from gradwork.chat.errors import (
    AuthorizationError,
    ContractNotFoundError,
    PersistenceError,
)
from gradwork.services.contract_service import (
    ChatContractAuthorizer,
    ContractService,
    parties,
)


@pytest.mark.asyncio
async def test_both_parties_authorized(db_session, chat):
    svc = ContractService(db_session)
    for user in (chat.client, chat.freelancer):
        contract = await svc.authorize_chat(chat.contract.id, user.id)
        assert contract.id == chat.contract.id
    assert parties(contract) == (chat.client.id, chat.freelancer.id)


@pytest.mark.asyncio
async def test_stranger_rejected(db_session, chat):
    with pytest.raises(AuthorizationError, match="not a party"):
        await ContractService(db_session).authorize_chat(chat.contract.id, uuid.uuid4())


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["pending", "rejected"])
async def test_only_accepted_contracts_chat(db_session, seed, status):
    data = await seed(status=status)
    with pytest.raises(AuthorizationError, match="accepted contracts") as exc:
        await ContractService(db_session).authorize_chat(data.contract.id, data.client.id)
    assert exc.value.status_code == 403


@pytest.mark.asyncio
async def test_unknown_contract(db_session):
    with pytest.raises(ContractNotFoundError) as exc:
        await ContractService(db_session).authorize_chat(uuid.uuid4(), uuid.uuid4())
    assert exc.value.status_code == 404
    assert exc.value.close_code == 4404


@pytest.mark.asyncio
async def test_list_chat_contracts_from_both_sides(db_session, chat, seed):
    await seed(client_user=chat.client, status="pending")
    svc = ContractService(db_session)

    (as_client,) = await svc.list_chat_contracts(chat.client.id)
    assert as_client.other_user_id == chat.freelancer.id
    assert as_client.other_user.display_name == "Fran Freelancer"

    (as_freelancer,) = await svc.list_chat_contracts(chat.freelancer.id)
    assert as_freelancer.other_user_id == chat.client.id

    assert await svc.list_chat_contracts(uuid.uuid4()) == []


@pytest.mark.asyncio
async def test_authorizer_uses_its_own_session(session_factory, chat):
    authorizer = ChatContractAuthorizer(session_factory)
    contract = await authorizer.authorize_chat(chat.contract.id, chat.freelancer.id)
    assert contract.id == chat.contract.id


@pytest.mark.asyncio
async def test_authorizer_wraps_database_errors(session_factory, db_engine, chat):
    async with db_engine.begin() as conn:
        await conn.exec_driver_sql("DROP TABLE contracts")

    with pytest.raises(PersistenceError, match="Database error"):
        await ChatContractAuthorizer(session_factory).authorize_chat(
            chat.contract.id, chat.client.id
        )


@pytest.mark.asyncio
async def test_authorizer_wraps_connection_refused():
    with pytest.raises(PersistenceError, match="Database error") as exc:
        await ChatContractAuthorizer(unreachable_db).authorize_chat(
            uuid.uuid4(), uuid.uuid4()
        )
    assert exc.value.status_code == 500
    assert exc.value.close_code == 1011
