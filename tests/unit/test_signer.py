"""
Unit tests for the signer adapter.
"""

import pytest
from conftest import ADDRESS, PRIVATE_KEY
from eth_account import Account
from eth_account.messages import encode_defunct

from enclave_sdk.core.errors import SignerError, SignerErrorKind
from enclave_sdk.core.signer import Signer, classify_signer_exception, recover_signer, verify_signature

MESSAGE = "🎯 Enclave Privacy Deposit Confirmation\n"


def _sign_locally(message: str) -> str:
    return Account.sign_message(encode_defunct(text=message), PRIVATE_KEY).signature.hex()


class UserRejectedError(Exception):
    pass


class ProviderError(Exception):
    def __init__(self, message, code):
        super().__init__(message)
        self.code = code


class FakeWallet:
    def __init__(self, address=ADDRESS):
        self.address = address
        self.seen = []

    async def sign_message(self, message):
        self.seen.append(message)
        return _sign_locally(message)

    def get_address(self):
        return self.address


# ------------------------------------------------------------------
# Private key
# ------------------------------------------------------------------


class TestPrivateKey:
    @pytest.mark.asyncio
    async def test_signature_recovers_to_address(self, signer):
        sig = await signer.sign_message(MESSAGE)
        assert sig.startswith("0x") and len(sig) == 132
        assert recover_signer(MESSAGE, sig) == ADDRESS
        assert verify_signature(MESSAGE, sig, ADDRESS.lower())

    @pytest.mark.asyncio
    async def test_address(self, signer):
        assert await signer.get_address() == ADDRESS
        ua = await signer.get_universal_address()
        assert ua.chain_id == 60
        assert ua.canonical_hex() == ADDRESS.lower()

    def test_key_without_prefix(self):
        assert Signer.from_private_key(PRIVATE_KEY[2:]).kind == "private_key"

    def test_bad_key(self):
        with pytest.raises(SignerError) as exc:
            Signer.from_private_key("0x1234")
        assert exc.value.kind is SignerErrorKind.UNSUPPORTED
        assert "1234" not in str(exc.value)

    def test_repr_hides_key(self, signer):
        assert PRIVATE_KEY[2:] not in repr(signer)

    @pytest.mark.asyncio
    async def test_empty_message(self, signer):
        with pytest.raises(SignerError):
            await signer.sign_message("")


# ------------------------------------------------------------------
# Callback / external
# ------------------------------------------------------------------


class TestCallback:
    @pytest.mark.asyncio
    async def test_receives_raw_message(self):
        seen = []

        def callback(message):
            seen.append(message)
            return _sign_locally(message)

        signer = Signer.from_callback(callback, address=ADDRESS.lower())
        sig = await signer.sign_message(MESSAGE)
        assert seen == [MESSAGE]
        assert recover_signer(MESSAGE, sig) == ADDRESS
        assert await signer.get_address() == ADDRESS

    @pytest.mark.asyncio
    async def test_async_callback_returning_bytes(self):
        async def callback(message):
            return bytes.fromhex(_sign_locally(message).removeprefix("0x"))

        sig = await Signer.from_callback(callback).sign_message(MESSAGE)
        assert verify_signature(MESSAGE, sig, ADDRESS)

    @pytest.mark.asyncio
    async def test_callback_without_address(self):
        signer = Signer.from_callback(lambda m: _sign_locally(m))
        with pytest.raises(SignerError) as exc:
            await signer.get_address()
        assert exc.value.kind is SignerErrorKind.UNSUPPORTED

    @pytest.mark.asyncio
    async def test_short_signature_is_invalid(self):
        signer = Signer.from_callback(lambda m: "0x" + "00" * 63)
        with pytest.raises(SignerError) as exc:
            await signer.sign_message(MESSAGE)
        assert exc.value.kind is SignerErrorKind.INVALID_SIGNATURE

    @pytest.mark.asyncio
    async def test_compact_signature_is_accepted(self):
        signer = Signer.from_callback(lambda m: "0x" + "AB" * 64)
        assert await signer.sign_message(MESSAGE) == "0x" + "ab" * 64

    @pytest.mark.asyncio
    async def test_external_wallet(self):
        wallet = FakeWallet(ADDRESS.lower())
        signer = Signer.coerce(wallet)
        assert signer.kind == "external"
        sig = await signer.sign_message(MESSAGE)
        assert wallet.seen == [MESSAGE]
        assert recover_signer(MESSAGE, sig) == ADDRESS
        assert await signer.get_address() == ADDRESS

    @pytest.mark.asyncio
    async def test_external_invalid_address(self):
        signer = Signer.from_external(FakeWallet("not-an-address"))
        with pytest.raises(SignerError) as exc:
            await signer.get_address()
        assert exc.value.kind is SignerErrorKind.SIGNER_FAILURE

    def test_coerce(self, signer):
        assert Signer.coerce(signer) is signer
        assert Signer.coerce(PRIVATE_KEY).kind == "private_key"
        assert Signer.coerce(lambda m: m).kind == "callback"
        with pytest.raises(SignerError):
            Signer.coerce(42)


# ------------------------------------------------------------------
# Failure classification
# ------------------------------------------------------------------


class TestClassification:
    @pytest.mark.parametrize("exc,kind", [
        (ProviderError("User denied", 4001), SignerErrorKind.USER_REJECTED),
        (ProviderError("rejected", "ACTION_REJECTED"), SignerErrorKind.USER_REJECTED),
        (UserRejectedError("nope"), SignerErrorKind.USER_REJECTED),
        (NotImplementedError(), SignerErrorKind.UNSUPPORTED),
        (ProviderError("internal", -32603), SignerErrorKind.SIGNER_FAILURE),
        # message text alone never counts as a rejection
        (RuntimeError("user rejected the request"), SignerErrorKind.SIGNER_FAILURE),
    ])
    def test_classify(self, exc, kind):
        assert classify_signer_exception(exc) is kind

    @pytest.mark.asyncio
    async def test_rejection_is_not_retryable(self):
        def callback(message):
            raise ProviderError("User denied", 4001)

        with pytest.raises(SignerError) as exc:
            await Signer.from_callback(callback).sign_message(MESSAGE)
        assert exc.value.user_rejected
        assert not exc.value.retryable
        assert exc.value.step == "sign"

    @pytest.mark.asyncio
    async def test_failure_is_retryable(self):
        def callback(message):
            raise ConnectionError("device unplugged")

        with pytest.raises(SignerError) as exc:
            await Signer.from_callback(callback).sign_message(MESSAGE)
        assert exc.value.kind is SignerErrorKind.SIGNER_FAILURE
        assert exc.value.retryable

    def test_recover_rejects_garbage(self):
        with pytest.raises(SignerError):
            recover_signer(MESSAGE, "0xzz")
        assert not verify_signature("other message", _sign_locally(MESSAGE), ADDRESS)
