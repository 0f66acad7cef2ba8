from salescrm.authz.models import Permission, Role, RolePermission
from salescrm.crm.models import Customer, CustomerScore

__all__ = [
	"Customer",
	"CustomerScore",
	"Permission",
	"Role",
	"RolePermission",
]
