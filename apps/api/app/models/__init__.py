from app.models.audit import AuditLog
from app.risk.models import (
	Application,
	Client,
	ClientDebtor,
	ClientUser,
	Debtor,
	DebtorDirector,
	DocumentType,
	Insurer,
	InsurerUser,
	Note,
	Organization,
	Policy,
	Task,
	User,
)

__all__ = [
	"AuditLog",
	"Application",
	"Client",
	"ClientDebtor",
	"ClientUser",
	"Debtor",
	"DebtorDirector",
	"DocumentType",
	"Insurer",
	"InsurerUser",
	"Note",
	"Organization",
	"Policy",
	"Task",
	"User",
]
