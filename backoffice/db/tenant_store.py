"""Session handle pinned to one tenant.

Services never filter by tenant themselves. They receive a ``TenantStore``
built from the caller's access triple and build every statement through it,
so a query for another tenant's row comes back empty and surfaces as
``NotFoundError``.
"""

from typing import Any, TypeVar

from sqlalchemy import Select, Update, select, update
from sqlalchemy.orm import InstrumentedAttribute, Session

from backoffice.core.errors import NotFoundError
from backoffice.models.tenant import Tenant

ModelT = TypeVar("ModelT")


class TenantStore:
    def __init__(self, db: Session, tenant_id: str, *, user_id: str | None = None):
        self._db = db
        self.tenant_id = tenant_id
        self.user_id = user_id

    @property
    def session(self) -> Session:
        return self._db

    def _scoped_column(self, model: type) -> InstrumentedAttribute:
        column = getattr(model, "tenant_id", None)
        if column is None:
            raise TypeError(f"{model.__name__} is not tenant-owned; use children()")
        return column

    def select(self, model: type[ModelT], *extra_columns: Any) -> Select:
        stmt = select(model, *extra_columns) if extra_columns else select(model)
        return stmt.where(self._scoped_column(model) == self.tenant_id)

    def select_columns(self, model: type, *columns: Any) -> Select:
        return select(*columns).where(self._scoped_column(model) == self.tenant_id)

    def update(self, model: type) -> Update:
        return update(model).where(self._scoped_column(model) == self.tenant_id)

    def children(self, foreign_key: InstrumentedAttribute, parent: Any) -> Select:
        """Rows of ``foreign_key``'s table hanging off a tenant-owned ``parent``."""
        if getattr(parent, "tenant_id", None) != self.tenant_id:
            raise NotFoundError(f"{type(parent).__name__} not found")
        return select(foreign_key.class_).where(foreign_key == parent.id)

    def find(self, model: type[ModelT], obj_id: str, *, for_update: bool = False) -> ModelT | None:
        stmt = self.select(model).where(model.id == obj_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self._db.execute(stmt).scalar_one_or_none()

    def get(
        self,
        model: type[ModelT],
        obj_id: str,
        *,
        label: str | None = None,
        for_update: bool = False,
    ) -> ModelT:
        row = self.find(model, obj_id, for_update=for_update)
        if row is None:
            raise NotFoundError(f"{label or model.__name__} not found")
        return row

    def tenant(self) -> Tenant:
        tenant = self._db.get(Tenant, self.tenant_id)
        if tenant is None:
            raise NotFoundError("Tenant not found")
        return tenant

    def add(self, obj: Any) -> Any:
        if hasattr(obj, "tenant_id"):
            obj.tenant_id = self.tenant_id
        self._db.add(obj)
        return obj

    def execute(self, stmt: Any):
        return self._db.execute(stmt)

    def scalars(self, stmt: Any) -> list:
        return list(self._db.execute(stmt).scalars().all())

    def flush(self) -> None:
        self._db.flush()
