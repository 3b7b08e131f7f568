"""
Localized labels for signing messages.

The wording is part of the signed payload: the backend renders the same
template with the same table, so any edit here must ship together with the
verifier. The verifier localizes Chinese only; the remaining codes are
accepted and rendered in English.
"""

from __future__ import annotations

from dataclasses import dataclass

from enclave_sdk.core.errors import ValidationError

LANG_EN = 1
LANG_ZH = 2
LANG_ES = 3
LANG_FR = 4
LANG_DE = 5
LANG_JA = 6
LANG_KO = 7
LANG_RU = 8
LANG_AR = 9
LANG_PT = 10


@dataclass(frozen=True)
class MessageLabels:
    commitment_title: str
    withdraw_title: str
    source_token: str
    allocations: str
    items: str          # "{n}" placeholder
    deposit: str
    total: str
    deposit_id: str
    network: str
    owner: str
    target_token: str
    asset_chain: str
    adapter: str
    beneficiary: str
    min_output: str
    on_chain: str       # "{address}" / "{chain}" placeholders

    def count(self, n: int) -> str:
        return self.items.format(n=n)

    def address_on(self, address: str, chain: str) -> str:
        return self.on_chain.format(address=address, chain=chain)


_LABELS: dict[int, MessageLabels] = {
    LANG_EN: MessageLabels(
        commitment_title="Enclave Privacy Deposit Confirmation",
        withdraw_title="Enclave Private Withdrawal",
        source_token="Token",
        allocations="Allocations",
        items="{n} item(s)",
        deposit="Deposit",
        total="Total",
        deposit_id="Deposit ID",
        network="Network",
        owner="Owner",
        target_token="Target Token",
        asset_chain="Asset Chain",
        adapter="Adapter",
        beneficiary="To",
        min_output="Minimum Output",
        on_chain="{address} on {chain}",
    ),
    LANG_ZH: MessageLabels(
        commitment_title="Enclave 隐私存款确认",
        withdraw_title="Enclave 隐私提款",
        source_token="代币",
        allocations="分配数量",
        items="{n} 项",
        deposit="存款",
        total="总计",
        deposit_id="存款ID",
        network="网络",
        owner="所有者",
        target_token="目标代币",
        asset_chain="资产链",
        adapter="适配器",
        beneficiary="收款地址",
        min_output="最低到账",
        on_chain="{chain}链上{address}地址",
    ),
}

SUPPORTED_LANGUAGES = (LANG_EN, LANG_ZH, LANG_ES, LANG_FR, LANG_DE, LANG_JA, LANG_KO, LANG_RU, LANG_AR, LANG_PT)


def get_labels(language: int) -> MessageLabels:
    """
    Only Chinese has its own wording; every other supported code renders
    the English template, as the backend verifier does.

    Raises:
        ValidationError: for a language code outside 1..10.
    """
    if isinstance(language, bool) or language not in SUPPORTED_LANGUAGES:
        raise ValidationError(
            f"Unsupported language code {language!r}; expected one of {SUPPORTED_LANGUAGES}",
            "language",
        )
    return _LABELS.get(language, _LABELS[LANG_EN])
