"""
rbac/store.py -- SQLAlchemy Core persistence for roles, permissions and their joins.

Pattern: Repository + Data Mapper (same as auth/store.py).
RBACStore is the single repository for the roles, permissions,
role_permissions and principal_roles tables. The catalog, graph, role
registry and assignment services in rbac/ hold business rules and call into
this class; none of them issue SQL.

Atomicity:
  assign_permissions() runs its optional clear-then-add inside one
  engine.begin() block. Readers either see the old grant set or the new one,
  never the empty intermediate state.

Layer rule: no imports from api/ or cache/.
"""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import func, or_, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from auth.models import Permission, PrincipalRole, Role, RolePermission
from db.schema import now_iso, permissions, principal_roles, principals, role_permissions, roles

_PERMISSION_SORT_COLUMNS = {
    "method": permissions.c.method,
    "route": permissions.c.route,
    "action": permissions.c.action,
    "created_at": permissions.c.created_at,
}


class RBACStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def create_role(self, role: Role) -> Role:
        """Insert a role. Raises IntegrityError on a duplicate name."""
        created_at = now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(roles.insert().values(name=role.name, description=role.description, created_at=created_at))
        role.id = result.inserted_primary_key[0]
        role.created_at = created_at
        return role

    def get_role(self, role_id: int) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(roles.select().where(roles.c.id == role_id)).fetchone()
        return _row_to_role(row) if row is not None else None

    def get_role_by_name(self, name: str) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(roles.select().where(roles.c.name == name)).fetchone()
        return _row_to_role(row) if row is not None else None

    def role_name_taken(self, name: str, exclude_id: int | None = None) -> bool:
        query = select(roles.c.id).where(roles.c.name == name)
        if exclude_id is not None:
            query = query.where(roles.c.id != exclude_id)
        with self.engine.connect() as conn:
            return conn.execute(query).fetchone() is not None

    def update_role(self, role: Role) -> None:
        role.updated_at = now_iso()
        with self.engine.begin() as conn:
            conn.execute(
                roles.update()
                .where(roles.c.id == role.id)
                .values(name=role.name, description=role.description, updated_at=role.updated_at)
            )

    def delete_role(self, role_id: int) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(roles.delete().where(roles.c.id == role_id))
        return result.rowcount > 0

    def list_roles(self, page: int = 1, limit: int = 10, search: str | None = None) -> tuple[list[Role], int]:
        query = roles.select()
        count_query = select(func.count()).select_from(roles)
        if search:
            pattern = f"%{search}%"
            condition = or_(roles.c.name.like(pattern), roles.c.description.like(pattern))
            query = query.where(condition)
            count_query = count_query.where(condition)
        with self.engine.connect() as conn:
            total = conn.execute(count_query).scalar() or 0
            rows = conn.execute(query.order_by(roles.c.name).offset((page - 1) * limit).limit(limit)).fetchall()
        return [_row_to_role(r) for r in rows], total

    def count_principals_with_role(self, role_id: int) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(principal_roles).where(principal_roles.c.role_id == role_id)
            ).scalar()
        return result or 0

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    def create_permission(self, permission: Permission) -> Permission:
        """Insert a permission. Raises IntegrityError if the triple already exists."""
        created_at = now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                permissions.insert().values(
                    method=permission.method,
                    route=permission.route,
                    action=permission.action,
                    created_at=created_at,
                )
            )
        permission.id = result.inserted_primary_key[0]
        permission.created_at = created_at
        return permission

    def find_permission(self, method: str, route: str, action: str) -> Permission | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                permissions.select().where(
                    (permissions.c.method == method) & (permissions.c.route == route) & (permissions.c.action == action)
                )
            ).fetchone()
        return _row_to_permission(row) if row is not None else None

    def find_by_method_route(self, method: str, route: str) -> Permission | None:
        """Exact (method, route) match. The oldest record wins if several actions share a route."""
        with self.engine.connect() as conn:
            row = conn.execute(
                permissions.select()
                .where((permissions.c.method == method) & (permissions.c.route == route))
                .order_by(permissions.c.id)
                .limit(1)
            ).fetchone()
        return _row_to_permission(row) if row is not None else None

    def permissions_for_method(self, method: str) -> list[Permission]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                permissions.select().where(permissions.c.method == method).order_by(permissions.c.id)
            ).fetchall()
        return [_row_to_permission(r) for r in rows]

    def get_permission(self, permission_id: int) -> Permission | None:
        with self.engine.connect() as conn:
            row = conn.execute(permissions.select().where(permissions.c.id == permission_id)).fetchone()
        return _row_to_permission(row) if row is not None else None

    def get_permissions(self, permission_ids: Iterable[int]) -> list[Permission]:
        ids = list(set(permission_ids))
        if not ids:
            return []
        with self.engine.connect() as conn:
            rows = conn.execute(permissions.select().where(permissions.c.id.in_(ids)).order_by(permissions.c.id)).fetchall()
        return [_row_to_permission(r) for r in rows]

    def all_permissions(self, order_by: str = "created_at") -> list[Permission]:
        column = _PERMISSION_SORT_COLUMNS.get(order_by, permissions.c.created_at)
        with self.engine.connect() as conn:
            rows = conn.execute(permissions.select().order_by(column, permissions.c.id)).fetchall()
        return [_row_to_permission(r) for r in rows]

    def list_permissions(
        self,
        method: str | None = None,
        module: str | None = None,
        action: str | None = None,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "created_at",
        sort_order: str = "asc",
    ) -> tuple[list[Permission], int]:
        """Filtered, sorted, paginated permission listing.

        sort_by is looked up in a fixed column whitelist; unknown values fall
        back to created_at rather than reaching SQL.
        """
        conditions = []
        if method:
            conditions.append(permissions.c.method == method)
        if action:
            conditions.append(permissions.c.action.like(f"%{action}%"))
        if module:
            conditions.append(permissions.c.action.like(f"{module}:%"))
        column = _PERMISSION_SORT_COLUMNS.get(sort_by, permissions.c.created_at)
        ordering = column.desc() if sort_order.lower() == "desc" else column.asc()

        query = permissions.select()
        count_query = select(func.count()).select_from(permissions)
        for condition in conditions:
            query = query.where(condition)
            count_query = count_query.where(condition)
        with self.engine.connect() as conn:
            total = conn.execute(count_query).scalar() or 0
            rows = conn.execute(query.order_by(ordering, permissions.c.id).offset((page - 1) * limit).limit(limit)).fetchall()
        return [_row_to_permission(r) for r in rows], total

    # ------------------------------------------------------------------
    # Role <-> Permission
    # ------------------------------------------------------------------

    def grant(self, role_id: int, permission_id: int) -> bool:
        """Create the join record if missing. Returns True if a row was inserted."""
        try:
            with self.engine.begin() as conn:
                return _grant(conn, role_id, permission_id)
        except IntegrityError:
            # A concurrent grant of the same pair won the race.
            return False

    def revoke(self, role_id: int, permission_ids: Iterable[int]) -> int:
        ids = list(permission_ids)
        if not ids:
            return 0
        with self.engine.begin() as conn:
            result = conn.execute(
                role_permissions.delete().where(
                    (role_permissions.c.role_id == role_id) & (role_permissions.c.permission_id.in_(ids))
                )
            )
        return result.rowcount

    def assign_permissions(self, role_id: int, permission_ids: Iterable[int], replace: bool = False) -> int:
        """Add (and with replace=True, first clear) grants in one transaction.

        Returns the number of join rows inserted. Any exception rolls the
        whole unit back, leaving the previous grant set intact.
        """
        inserted = 0
        with self.engine.begin() as conn:
            if replace:
                conn.execute(role_permissions.delete().where(role_permissions.c.role_id == role_id))
            for permission_id in dict.fromkeys(permission_ids):
                if _grant(conn, role_id, permission_id):
                    inserted += 1
        return inserted

    def has_permission(self, role_id: int, permission_id: int) -> bool:
        with self.engine.connect() as conn:
            return _grant_exists(conn, role_id, permission_id)

    def effective_permissions(self, role_names: Iterable[str]) -> list[Permission]:
        names = list(role_names)
        if not names:
            return []
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(permissions)
                .distinct()
                .select_from(
                    permissions.join(role_permissions, role_permissions.c.permission_id == permissions.c.id).join(
                        roles, roles.c.id == role_permissions.c.role_id
                    )
                )
                .where(roles.c.name.in_(names))
                .order_by(permissions.c.id)
            ).fetchall()
        return [_row_to_permission(r) for r in rows]

    def is_authorized(self, role_names: list[str], method: str, action: str) -> bool:
        """EXISTS over role -> role_permissions -> permissions filtered by name, method, action."""
        condition = (
            select(role_permissions.c.id)
            .select_from(
                role_permissions.join(roles, roles.c.id == role_permissions.c.role_id).join(
                    permissions, permissions.c.id == role_permissions.c.permission_id
                )
            )
            .where(roles.c.name.in_(role_names))
            .where(permissions.c.method == method)
            .where(permissions.c.action == action)
            .exists()
        )
        with self.engine.connect() as conn:
            return bool(conn.execute(select(condition)).scalar())

    def role_permissions_page(self, role_id: int, page: int = 1, limit: int = 10) -> tuple[list[Permission], int]:
        join = permissions.join(role_permissions, role_permissions.c.permission_id == permissions.c.id)
        with self.engine.connect() as conn:
            total = (
                conn.execute(
                    select(func.count()).select_from(role_permissions).where(role_permissions.c.role_id == role_id)
                ).scalar()
                or 0
            )
            rows = conn.execute(
                select(permissions)
                .select_from(join)
                .where(role_permissions.c.role_id == role_id)
                .order_by(permissions.c.id)
                .offset((page - 1) * limit)
                .limit(limit)
            ).fetchall()
        return [_row_to_permission(r) for r in rows], total

    def permission_roles_page(self, permission_id: int, page: int = 1, limit: int = 10) -> tuple[list[Role], int]:
        join = roles.join(role_permissions, role_permissions.c.role_id == roles.c.id)
        with self.engine.connect() as conn:
            total = (
                conn.execute(
                    select(func.count())
                    .select_from(role_permissions)
                    .where(role_permissions.c.permission_id == permission_id)
                ).scalar()
                or 0
            )
            rows = conn.execute(
                select(roles)
                .select_from(join)
                .where(role_permissions.c.permission_id == permission_id)
                .order_by(roles.c.name)
                .offset((page - 1) * limit)
                .limit(limit)
            ).fetchall()
        return [_row_to_role(r) for r in rows], total

    def get_assignment(self, assignment_id: int) -> RolePermission | None:
        with self.engine.connect() as conn:
            row = conn.execute(role_permissions.select().where(role_permissions.c.id == assignment_id)).fetchone()
        return _row_to_role_permission(row) if row is not None else None

    def remove_assignment(self, assignment_id: int) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(role_permissions.delete().where(role_permissions.c.id == assignment_id))
        return result.rowcount > 0

    def role_names_by_permission(self) -> dict[int, list[str]]:
        """Map permission id -> names of the roles granting it."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(role_permissions.c.permission_id, roles.c.name)
                .select_from(role_permissions.join(roles, roles.c.id == role_permissions.c.role_id))
                .order_by(roles.c.name)
            ).fetchall()
        mapping: dict[int, list[str]] = {}
        for row in rows:
            mapping.setdefault(row.permission_id, []).append(row.name)
        return mapping

    # ------------------------------------------------------------------
    # Principal <-> Role
    # ------------------------------------------------------------------

    def add_principal_role(self, principal_id: int, role_id: int, assigned_by: int | None = None) -> PrincipalRole:
        """Insert the assignment. Raises IntegrityError if the pair already exists."""
        assigned_at = now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                principal_roles.insert().values(
                    principal_id=principal_id,
                    role_id=role_id,
                    assigned_by=assigned_by,
                    assigned_at=assigned_at,
                )
            )
        return self.get_principal_role_by_id(result.inserted_primary_key[0])

    def get_principal_role(self, principal_id: int, role_id: int) -> PrincipalRole | None:
        return self._principal_role_where(
            (principal_roles.c.principal_id == principal_id) & (principal_roles.c.role_id == role_id)
        )

    def get_principal_role_by_id(self, assignment_id: int) -> PrincipalRole | None:
        return self._principal_role_where(principal_roles.c.id == assignment_id)

    def remove_principal_role(self, principal_id: int, role_id: int) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(
                principal_roles.delete().where(
                    (principal_roles.c.principal_id == principal_id) & (principal_roles.c.role_id == role_id)
                )
            )
        return result.rowcount > 0

    def principal_role_assignments(self, principal_id: int) -> list[PrincipalRole]:
        """All assignments of a principal, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _principal_role_select()
                .where(principal_roles.c.principal_id == principal_id)
                .order_by(principal_roles.c.assigned_at.desc(), principal_roles.c.id.desc())
            ).fetchall()
        return [_row_to_principal_role(r) for r in rows]

    def role_principal_ids(self, role_id: int, page: int = 1, limit: int = 10) -> tuple[list[int], int]:
        with self.engine.connect() as conn:
            total = (
                conn.execute(
                    select(func.count()).select_from(principal_roles).where(principal_roles.c.role_id == role_id)
                ).scalar()
                or 0
            )
            rows = conn.execute(
                select(principal_roles.c.principal_id)
                .where(principal_roles.c.role_id == role_id)
                .order_by(principal_roles.c.assigned_at.desc(), principal_roles.c.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            ).fetchall()
        return [r.principal_id for r in rows], total

    def role_stats(self, role_id: int) -> tuple[int, int]:
        """Return (total principals holding the role, active principals holding it)."""
        with self.engine.connect() as conn:
            total = (
                conn.execute(
                    select(func.count()).select_from(principal_roles).where(principal_roles.c.role_id == role_id)
                ).scalar()
                or 0
            )
            active = (
                conn.execute(
                    select(func.count())
                    .select_from(principal_roles.join(principals, principals.c.id == principal_roles.c.principal_id))
                    .where((principal_roles.c.role_id == role_id) & (principals.c.is_active == 1))
                ).scalar()
                or 0
            )
        return total, active

    def _principal_role_where(self, clause) -> PrincipalRole | None:
        with self.engine.connect() as conn:
            row = conn.execute(_principal_role_select().where(clause)).fetchone()
        return _row_to_principal_role(row) if row is not None else None

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Connection-level helpers (shared by single-shot and transactional paths)
# ---------------------------------------------------------------------------


def _grant_exists(conn: Connection, role_id: int, permission_id: int) -> bool:
    row = conn.execute(
        select(role_permissions.c.id).where(
            (role_permissions.c.role_id == role_id) & (role_permissions.c.permission_id == permission_id)
        )
    ).fetchone()
    return row is not None


def _grant(conn: Connection, role_id: int, permission_id: int) -> bool:
    if _grant_exists(conn, role_id, permission_id):
        return False
    stamp = now_iso()
    conn.execute(
        role_permissions.insert().values(role_id=role_id, permission_id=permission_id, created_at=stamp, updated_at=stamp)
    )
    return True


def _principal_role_select():
    return select(
        principal_roles.c.id,
        principal_roles.c.principal_id,
        principal_roles.c.role_id,
        principal_roles.c.assigned_by,
        principal_roles.c.assigned_at,
        roles.c.name.label("role_name"),
    ).select_from(principal_roles.join(roles, roles.c.id == principal_roles.c.role_id))


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_role(row) -> Role:
    return Role(
        id=row.id,
        name=row.name,
        description=row.description,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_permission(row) -> Permission:
    return Permission(
        id=row.id,
        method=row.method,
        route=row.route,
        action=row.action,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_role_permission(row) -> RolePermission:
    return RolePermission(
        id=row.id,
        role_id=row.role_id,
        permission_id=row.permission_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_principal_role(row) -> PrincipalRole:
    return PrincipalRole(
        id=row.id,
        principal_id=row.principal_id,
        role_id=row.role_id,
        role_name=row.role_name,
        assigned_by=row.assigned_by,
        assigned_at=row.assigned_at,
    )
