"""Category lookup tables and extractors for ranked breakdowns."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from fiscal_correlator.records.types import CteRecord, NfeRecord

# Payer ("tomador do serviço") codes as defined by the CT-e layout.
PAYER_ROLES: Mapping[int, str] = MappingProxyType(
    {
        0: "Remetente",
        1: "Expedidor",
        2: "Recebedor",
        3: "Destinatário",
        4: "Terceiro",
    }
)

NCM_LABELS = ("ncm", "descricao")
PAYER_LABELS = ("cnpj_cpf", "atributo")

# Digits of a CNPJ that identify the company regardless of branch.
CNPJ_ROOT_DIGITS = 8


def digits_only(value: str | None) -> str | None:
    if value is None:
        return None
    digits = "".join(char for char in value if char.isdigit())
    return digits or None


def ncm_description(record: NfeRecord) -> tuple[tuple[str, str], float] | None:
    """Group an invoice item by (NCM, description)."""
    if record.ncm is None or record.description is None or record.product_value is None:
        return None
    return (record.ncm, record.description), record.product_value


@dataclass(frozen=True)
class PayerExtractor:
    """
    Group a transport document by (payer identity, payer role).

    The payer identity is the CNPJ root when the payer is a company and the
    full CPF otherwise. The role name comes from the injected table, built
    once per run.
    """

    roles: Mapping[int, str] = field(default_factory=lambda: dict(PAYER_ROLES))

    def payer_identity(self, record: CteRecord) -> str | None:
        cnpj = digits_only(record.payer_cnpj)
        if cnpj is not None:
            return cnpj[:CNPJ_ROOT_DIGITS]
        return digits_only(record.payer_cpf)

    def __call__(self, record: CteRecord) -> tuple[tuple[str, str], float] | None:
        identity = self.payer_identity(record)
        role = self.roles.get(record.payer_code) if record.payer_code is not None else None
        if identity is None or role is None or record.total_value is None:
            return None
        return (identity, role), record.total_value
