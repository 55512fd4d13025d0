"""
Tests for the account protocol state machine.

Covers:
- validate -> settle -> execute through the orchestrator
- replay protection across phases
- soft rejection vs InvalidSignature on the direct path
- caller gating and atomicity of every phase
"""
import pydantic
import pytest

from smartaccount.host.ledger import LedgerState, CallReverted
from smartaccount.host.system import create_host
from smartaccount.account.events import EventBus
from smartaccount.account.smart_account import (
    create_account, VALIDATION_SUCCESS_MAGIC, VALIDATION_FAILED_MAGIC,
)
from smartaccount.protocol.config.params import PROFILES
from smartaccount.protocol.types.request import Request
from smartaccount.protocol.types.common import (
    DigestScheme, SignatureCheck, ProtocolError, ValidationError, NotAuthorized, NotOrchestrator,
    InsufficientFunds, ReplaySequenceError, InvalidSignature, FailedToPay,
    ExecutionError, ExecutionFailed, SystemCallError,
)
from smartaccount.protocol.crypto.keys import generate_private_key, public_key_from_private
from smartaccount.protocol.crypto.addresses import address_from_pubkey, contract_address
from smartaccount.observability.metrics import export_metrics

CONFIG = PROFILES["native"]
ORCHESTRATOR = CONFIG.orchestrator


def make_identity():
    priv = generate_private_key()
    return priv, address_from_pubkey(public_key_from_private(priv))


def make_request(account, priv, nonce, target, **fields) -> Request:
    req = Request(sender=account.address, target=target, nonce=nonce, **fields)
    req.sign(priv, account.config.digest_scheme, account.config.chain_id)
    return req


@pytest.fixture
def env():
    ledger = create_host(CONFIG)
    owner_priv, owner = make_identity()
    events = EventBus()
    account = create_account(ledger, owner, CONFIG, events=events)
    ledger.credit(account.address, 10)
    _, target = make_identity()
    yield ledger, account, owner_priv, target
    events.clear()


# ═══════════════════════════════════════════════════════════════════
# SCENARIOS
# ═══════════════════════════════════════════════════════════════════

def test_validate_execute_then_replay(env):
    ledger, account, owner_priv, target = env
    req = make_request(account, owner_priv, 0, target)

    outcome = account.validate(ORCHESTRATOR, req)
    assert outcome.accepted
    assert outcome.magic == VALIDATION_SUCCESS_MAGIC
    assert outcome.signature_check == SignatureCheck.VALID

    assert account.execute(ORCHESTRATOR, req) == b""
    assert account.dispatcher.calls == 1

    # Same request again
    with pytest.raises(ReplaySequenceError, match="expected 1, got 0"):
        account.validate(ORCHESTRATOR, req)
    assert account.expected_nonce() == 1


def test_foreign_signature_soft_rejects_but_direct_path_raises(env):
    ledger, account, owner_priv, target = env
    account.validate(ORCHESTRATOR, make_request(account, owner_priv, 0, target))

    other_priv, _ = make_identity()
    req_b = make_request(account, other_priv, 1, target)

    outcome = account.validate(ORCHESTRATOR, req_b)
    assert not outcome.accepted
    assert outcome.magic == VALIDATION_FAILED_MAGIC
    assert outcome.signature_check == SignatureCheck.MISMATCH
    assert account.expected_nonce() == 1

    with pytest.raises(InvalidSignature):
        account.submit_directly(req_b)
    assert account.dispatcher.calls == 0
    assert account.expected_nonce() == 1


def test_settle_from_empty_account(env):
    ledger, _, _, _ = env
    _, owner = make_identity()
    empty = create_account(ledger, owner, CONFIG)

    with pytest.raises(InsufficientFunds):
        empty.settle(ORCHESTRATOR, 5)
    assert empty.balance == 0
    assert ledger.balance_of(ORCHESTRATOR) == 0


# ═══════════════════════════════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════════════════════════════

def test_validate_requires_orchestrator(env):
    ledger, account, owner_priv, target = env
    req = make_request(account, owner_priv, 0, target)

    with pytest.raises(NotOrchestrator):
        account.validate(account.owner, req)
    assert account.expected_nonce() == 0


def test_validate_checks_value_plus_fee_budget(env):
    ledger, account, owner_priv, target = env

    # 5 * 2 == balance
    assert account.validate(ORCHESTRATOR, make_request(account, owner_priv, 0, target,
                                                      gas_limit=5, gas_price=2)).accepted

    with pytest.raises(InsufficientFunds, match="have 10, need 11"):
        account.validate(ORCHESTRATOR, make_request(account, owner_priv, 1, target,
                                                    value=1, gas_limit=5, gas_price=2))
    # The failed request did not consume its sequence number
    assert account.expected_nonce() == 1


def test_validate_rejects_foreign_sender(env):
    ledger, account, owner_priv, target = env
    req = Request(sender=target, target=target, nonce=0)
    req.sign(owner_priv, CONFIG.digest_scheme, CONFIG.chain_id)

    with pytest.raises(ValidationError):
        account.validate(ORCHESTRATOR, req)
    assert account.expected_nonce() == 0


def test_malformed_signature_is_a_soft_rejection(env):
    ledger, account, owner_priv, target = env
    req = Request(sender=account.address, target=target, nonce=0, signature=b"\x01" * 10)

    outcome = account.validate(ORCHESTRATOR, req)
    assert not outcome.accepted
    assert outcome.signature_check == SignatureCheck.MALFORMED
    assert account.expected_nonce() == 0


def test_lanes_do_not_interfere(env):
    ledger, account, owner_priv, target = env
    assert account.validate(ORCHESTRATOR, make_request(account, owner_priv, 0, target, nonce_key=5)).accepted
    assert account.expected_nonce(5) == 1
    assert account.expected_nonce(0) == 0


# ═══════════════════════════════════════════════════════════════════
# SETTLEMENT
# ═══════════════════════════════════════════════════════════════════

def test_settle_pays_orchestrator(env):
    ledger, account, _, _ = env
    paid = []
    account.events.subscribe("fee_settled", lambda **data: paid.append(data["amount"]))

    account.settle(ORCHESTRATOR, 4)

    assert account.balance == 6
    assert ledger.balance_of(ORCHESTRATOR) == 4
    assert paid == [4]


def test_settle_requires_orchestrator(env):
    ledger, account, _, _ = env
    with pytest.raises(NotOrchestrator):
        account.settle(account.owner, 4)
    assert account.balance == 10


def test_refused_fee_surfaces_as_failed_to_pay():
    ledger = LedgerState()
    _, orchestrator = make_identity()

    def refuse(ctx):
        raise CallReverted(b"closed")

    ledger.register_handler(orchestrator, refuse)
    config = CONFIG.with_overrides(orchestrator=orchestrator)
    _, owner = make_identity()
    account = create_account(ledger, owner, config, events=EventBus())
    ledger.credit(account.address, 10)

    with pytest.raises(FailedToPay) as exc:
        account.settle(orchestrator, 3)

    assert exc.value.return_data == b"closed"
    assert account.balance == 10
    assert ledger.balance_of(orchestrator) == 0


# ═══════════════════════════════════════════════════════════════════
# EXECUTION
# ═══════════════════════════════════════════════════════════════════

def test_execute_by_stranger_is_not_authorized(env):
    ledger, account, owner_priv, target = env
    _, stranger = make_identity()
    req = make_request(account, owner_priv, 0, target, value=5)

    with pytest.raises(NotAuthorized):
        account.execute(stranger, req)

    assert account.dispatcher.calls == 0
    assert account.expected_nonce() == 0
    assert account.balance == 10


def test_owner_may_execute(env):
    ledger, account, owner_priv, target = env
    req = make_request(account, owner_priv, 0, target, value=5)

    account.execute(account.owner, req)

    assert account.balance == 5
    assert ledger.balance_of(target) == 5


def test_failed_execution_is_atomic(env):
    ledger, account, owner_priv, target = env

    def failing(ctx):
        raise CallReverted(b"boom")

    ledger.register_handler(target, failing)
    req = make_request(account, owner_priv, 0, target, value=5)

    with pytest.raises(ExecutionFailed) as exc:
        account.execute(ORCHESTRATOR, req)

    assert exc.value.return_data == b"boom"
    assert isinstance(exc.value.__cause__, ExecutionError)
    assert account.balance == 10
    assert ledger.balance_of(target) == 0


def test_execute_privileged_deploy(env):
    ledger, account, owner_priv, _ = env
    req = make_request(account, owner_priv, 0, CONFIG.contract_deployer, payload=b"contract-code",
                       gas_limit=1, gas_price=1)

    deployed = account.execute(ORCHESTRATOR, req).decode("utf-8")

    assert deployed == contract_address(account.address, 0)
    assert ledger.get_account(deployed).code == b"contract-code"


def test_privileged_failure_aborts_request(env):
    ledger, account, owner_priv, _ = env
    req = make_request(account, owner_priv, 0, CONFIG.contract_deployer, value=2, payload=b"")

    with pytest.raises(ExecutionFailed) as exc:
        account.execute(ORCHESTRATOR, req)

    assert isinstance(exc.value.__cause__, SystemCallError)
    assert account.balance == 10


# ═══════════════════════════════════════════════════════════════════
# DIRECT PATH
# ═══════════════════════════════════════════════════════════════════

def test_submit_directly(env):
    ledger, account, owner_priv, target = env
    executed = []
    account.events.subscribe("request_executed", lambda **data: executed.append(data["nonce"]))

    account.submit_directly(make_request(account, owner_priv, 0, target, value=3))

    assert account.balance == 7
    assert ledger.balance_of(target) == 3
    assert account.expected_nonce() == 1
    assert executed == [0]


def test_submit_directly_failure_keeps_sequence(env):
    ledger, account, owner_priv, target = env

    def failing(ctx):
        raise CallReverted(b"no")

    ledger.register_handler(target, failing)

    with pytest.raises(ExecutionFailed):
        account.submit_directly(make_request(account, owner_priv, 0, target, value=3))

    assert account.expected_nonce() == 0
    assert account.balance == 10


def test_submit_directly_checks_replay(env):
    ledger, account, owner_priv, target = env
    req = make_request(account, owner_priv, 0, target)
    account.submit_directly(req)

    with pytest.raises(ReplaySequenceError):
        account.submit_directly(req)
    assert account.dispatcher.calls == 1


# ═══════════════════════════════════════════════════════════════════
# OWNERSHIP, EXTENSION, PROFILES
# ═══════════════════════════════════════════════════════════════════

def test_prepare_for_extension_is_noop(env):
    ledger, account, _, _ = env
    assert account.prepare_for_extension() is None
    assert account.balance == 10


def test_transfer_ownership(env):
    ledger, account, owner_priv, target = env
    old_owner = account.owner
    new_priv, new_owner = make_identity()
    transfers = []
    account.events.subscribe("ownership_transferred", lambda **data: transfers.append(data["new_owner"]))

    _, stranger = make_identity()
    with pytest.raises(NotAuthorized):
        account.transfer_ownership(stranger, stranger)

    account.transfer_ownership(old_owner, new_owner)
    assert account.owner == new_owner
    assert transfers == [new_owner]

    assert not account.validate(ORCHESTRATOR, make_request(account, owner_priv, 0, target)).accepted
    assert account.validate(ORCHESTRATOR, make_request(account, new_priv, 0, target)).accepted


def test_transfer_ownership_rejects_invalid_address(env):
    ledger, account, _, _ = env
    with pytest.raises(ValidationError):
        account.transfer_ownership(account.owner, "nobody")


def test_entrypoint_profile_uses_prefixed_digest_and_local_nonce():
    config = PROFILES["entrypoint"]
    ledger = LedgerState()
    owner_priv, owner = make_identity()
    account = create_account(ledger, owner, config, events=EventBus())
    ledger.credit(account.address, 10)
    _, target = make_identity()

    raw_signed = Request(sender=account.address, target=target, nonce=0)
    raw_signed.sign(owner_priv, DigestScheme.RAW, config.chain_id)
    assert not account.validate(config.orchestrator, raw_signed).accepted

    prefixed = make_request(account, owner_priv, 0, target)
    assert account.validate(config.orchestrator, prefixed).accepted
    assert ledger.get_storage(account.address, "nonce:0") == 1


def test_create_account_twice_fails(env):
    ledger, account, _, _ = env
    with pytest.raises(ValidationError, match="already deployed"):
        create_account(ledger, account.owner, CONFIG)


def test_phase_events_and_metrics(env):
    ledger, account, owner_priv, target = env
    seen = []
    for name in ("request_validated", "request_rejected"):
        account.events.subscribe(name, lambda name=name, **data: seen.append((name, data["nonce"])))

    other_priv, _ = make_identity()
    account.validate(ORCHESTRATOR, make_request(account, other_priv, 0, target))
    account.validate(ORCHESTRATOR, make_request(account, owner_priv, 0, target))

    assert seen == [("request_rejected", 0), ("request_validated", 0)]
    assert b"smartaccount_validations_total" in export_metrics()


# ═══════════════════════════════════════════════════════════════════
# REQUEST BOUNDS
# ═══════════════════════════════════════════════════════════════════

@pytest.mark.parametrize("field", ["value", "nonce", "nonce_key", "gas_limit", "call_gas_limit", "gas_price"])
def test_request_rejects_negative_fields(env, field):
    ledger, account, _, target = env
    fields = {"sender": account.address, "target": target, "nonce": 0, field: -1}

    with pytest.raises(pydantic.ValidationError):
        Request(**fields)

    req = Request(sender=account.address, target=target, nonce=0)
    with pytest.raises(pydantic.ValidationError):
        setattr(req, field, -1)


def test_unvalidated_negative_value_is_a_protocol_error(env):
    ledger, account, owner_priv, target = env
    failures = []
    account.events.subscribe("request_failed", lambda **data: failures.append(data["phase"]))
    # Built without field validation; the fee budget would hide the negative value
    req = Request.model_construct(sender=account.address, target=target, value=-5, payload=b"",
                                  nonce=0, nonce_key=0, gas_limit=3, call_gas_limit=0,
                                  gas_price=4, signature=b"")

    with pytest.raises(ValidationError, match="value"):
        account.validate(ORCHESTRATOR, req)
    with pytest.raises(ProtocolError):
        account.execute(ORCHESTRATOR, req)
    with pytest.raises(ValidationError):
        account.submit_directly(req)

    assert failures == ["validate", "execute", "submit_directly"]
    assert account.expected_nonce() == 0
    assert account.balance == 10
    assert account.dispatcher.calls == 0
