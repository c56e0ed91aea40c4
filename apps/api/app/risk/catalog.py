from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import Mapping

from app.risk.scope import ScopeEntity


CATALOG_VERSION = "2024.1"


class ModuleName(StrEnum):
    USER = "user"
    CLIENT = "client"
    INSURER = "insurer"
    DEBTOR = "debtor"
    APPLICATION = "application"
    CREDIT_LIMIT = "credit-limit"
    TASK = "task"
    POLICY = "policy"
    CLAIM = "claim"
    NOTE = "note"


@dataclass(frozen=True, slots=True)
class ColumnDef:
    name: str
    label: str
    type: str = "string"


@dataclass(frozen=True, slots=True)
class ModuleCatalog:
    name: str
    columns: tuple[ColumnDef, ...]
    default_columns: tuple[str, ...]

    def column(self, name: str) -> ColumnDef | None:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(column.name for column in self.columns)


@dataclass(frozen=True, slots=True)
class ModuleDescriptor:
    """Everything the platform needs to know about one functional module."""

    name: ModuleName
    scope_entity: ScopeEntity
    catalog: ModuleCatalog | None = None
    reference_columns: tuple[str, ...] = ()


def _catalog(name: str, columns: list[tuple[str, str, str]], defaults: list[str]) -> ModuleCatalog:
    return ModuleCatalog(
        name=name,
        columns=tuple(ColumnDef(name=col, label=label, type=kind) for col, label, kind in columns),
        default_columns=tuple(defaults),
    )


_CATALOGS = (
    _catalog(
        "user",
        [
            ("name", "Name", "string"),
            ("email", "Email", "string"),
            ("role", "Role", "string"),
            ("maxCreditLimit", "Maximum Credit Limit", "amount"),
            ("createdAt", "Created Date", "date"),
        ],
        ["name", "email", "role"],
    ),
    _catalog(
        "client",
        [
            ("clientCode", "Client Code", "string"),
            ("name", "Name", "string"),
            ("abn", "ABN", "string"),
            ("acn", "ACN", "string"),
            ("sector", "Sector", "string"),
            ("riskAnalystId", "Risk Analyst", "string"),
            ("serviceManagerId", "Service Manager", "string"),
            ("insurerId", "Insurer", "link"),
            ("createdAt", "Created Date", "date"),
            ("updatedAt", "Updated Date", "date"),
        ],
        ["clientCode", "name", "riskAnalystId", "serviceManagerId", "insurerId"],
    ),
    _catalog(
        "insurer",
        [
            ("name", "Name", "string"),
            ("crmInsurerId", "CRM Reference", "string"),
            ("createdAt", "Created Date", "date"),
        ],
        ["name"],
    ),
    _catalog(
        "debtor",
        [
            ("debtorCode", "Debtor Code", "string"),
            ("entityName", "Entity Name", "string"),
            ("entityType", "Entity Type", "string"),
            ("abn", "ABN", "string"),
            ("acn", "ACN", "string"),
            ("registrationNumber", "Registration Number", "string"),
            ("createdAt", "Created Date", "date"),
        ],
        ["debtorCode", "entityName", "entityType", "abn"],
    ),
    _catalog(
        "application",
        [
            ("applicationId", "Application ID", "string"),
            ("clientId", "Client Name", "link"),
            ("debtorId", "Debtor Name", "link"),
            ("status", "Status", "status"),
            ("creditLimit", "Credit Limit", "amount"),
            ("acceptedAmount", "Accepted Amount", "amount"),
            ("limitType", "Limit Type", "string"),
            ("isEndorsedLimit", "Endorsed Limit", "boolean"),
            ("requestDate", "Request Date", "date"),
            ("approvalOrDecliningDate", "Approval/Decline Date", "date"),
            ("expiryDate", "Expiry Date", "date"),
        ],
        ["applicationId", "clientId", "debtorId", "status", "creditLimit", "requestDate"],
    ),
    _catalog(
        "credit-limit",
        [
            ("debtorId", "Debtor Name", "link"),
            ("creditLimit", "Credit Limit", "amount"),
            ("isEndorsedLimit", "Endorsed Limit", "boolean"),
            ("status", "Status", "status"),
            ("expiryDate", "Expiry Date", "date"),
        ],
        ["debtorId", "creditLimit", "status", "expiryDate"],
    ),
    _catalog(
        "task",
        [
            ("description", "Description", "string"),
            ("entityType", "Entity Type", "string"),
            ("priority", "Priority", "string"),
            ("dueDate", "Due Date", "date"),
            ("isCompleted", "Completed", "boolean"),
            ("assigneeId", "Assignee", "string"),
            ("createdById", "Created By", "string"),
        ],
        ["description", "priority", "dueDate", "isCompleted"],
    ),
    _catalog(
        "policy",
        [
            ("product", "Product", "string"),
            ("policyNumber", "Policy Number", "string"),
            ("clientId", "Client Name", "link"),
            ("insurerId", "Insurer", "link"),
            ("discretionaryLimit", "Discretionary Limit", "amount"),
            ("aggregateOfCreditLimit", "Aggregate Of Credit Limit", "amount"),
            ("creditChecks", "Credit Checks", "string"),
            ("inceptionDate", "Inception Date", "date"),
            ("expiryDate", "Expiry Date", "date"),
        ],
        ["product", "policyNumber", "insurerId", "inceptionDate", "expiryDate"],
    ),
    _catalog(
        "claim",
        [
            ("name", "Claim Name", "string"),
            ("accountid", "Client Name", "link"),
            ("description", "Description", "string"),
            ("notifiedofcase", "Notified Of Case", "date"),
            ("claimsinforequested", "Claims Info Requested", "boolean"),
            ("claimsinforeviewed", "Claims Info Reviewed", "boolean"),
            ("datesubmittedtouw", "Date Submitted To UW", "date"),
            ("grossdebtamount", "Gross Debt Amount", "amount"),
            ("amountpaid", "Amount Paid", "amount"),
            ("reimbursementrequired", "Reimbursement Required", "boolean"),
            ("tradinghistory", "Trading History", "boolean"),
        ],
        ["accountid", "name", "notifiedofcase", "grossdebtamount", "amountpaid"],
    ),
)

MODULE_CATALOG: Mapping[str, ModuleCatalog] = MappingProxyType({catalog.name: catalog for catalog in _CATALOGS})


MODULES: Mapping[ModuleName, ModuleDescriptor] = MappingProxyType(
    {
        ModuleName.USER: ModuleDescriptor(
            name=ModuleName.USER,
            scope_entity=ScopeEntity.USER,
            catalog=MODULE_CATALOG["user"],
        ),
        ModuleName.CLIENT: ModuleDescriptor(
            name=ModuleName.CLIENT,
            scope_entity=ScopeEntity.CLIENT,
            catalog=MODULE_CATALOG["client"],
            reference_columns=("riskAnalystId", "serviceManagerId", "insurerId"),
        ),
        ModuleName.INSURER: ModuleDescriptor(
            name=ModuleName.INSURER,
            scope_entity=ScopeEntity.INSURER,
            catalog=MODULE_CATALOG["insurer"],
        ),
        ModuleName.DEBTOR: ModuleDescriptor(
            name=ModuleName.DEBTOR,
            scope_entity=ScopeEntity.DEBTOR,
            catalog=MODULE_CATALOG["debtor"],
        ),
        ModuleName.APPLICATION: ModuleDescriptor(
            name=ModuleName.APPLICATION,
            scope_entity=ScopeEntity.APPLICATION,
            catalog=MODULE_CATALOG["application"],
            reference_columns=("clientId", "debtorId"),
        ),
        ModuleName.CREDIT_LIMIT: ModuleDescriptor(
            name=ModuleName.CREDIT_LIMIT,
            scope_entity=ScopeEntity.CLIENT_DEBTOR,
            catalog=MODULE_CATALOG["credit-limit"],
            reference_columns=("debtorId",),
        ),
        ModuleName.TASK: ModuleDescriptor(
            name=ModuleName.TASK,
            scope_entity=ScopeEntity.TASK,
            catalog=MODULE_CATALOG["task"],
        ),
        ModuleName.POLICY: ModuleDescriptor(
            name=ModuleName.POLICY,
            scope_entity=ScopeEntity.POLICY,
            catalog=MODULE_CATALOG["policy"],
            reference_columns=("clientId", "insurerId"),
        ),
        ModuleName.CLAIM: ModuleDescriptor(
            name=ModuleName.CLAIM,
            scope_entity=ScopeEntity.CLAIM,
            catalog=MODULE_CATALOG["claim"],
            reference_columns=("accountid",),
        ),
        ModuleName.NOTE: ModuleDescriptor(name=ModuleName.NOTE, scope_entity=ScopeEntity.NOTE),
    }
)


def get_module(name: str) -> ModuleDescriptor | None:
    try:
        return MODULES[ModuleName(name)]
    except ValueError:
        return None


def get_catalog(name: str) -> ModuleCatalog | None:
    return MODULE_CATALOG.get(name)
