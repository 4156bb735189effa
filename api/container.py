"""
api/container.py -- Explicit dependency graph for the service layer.

build_container(settings) wires every store and service once. The lifespan
stores the result on app.state.container; the CLI builds its own. Nothing in
auth/ or rbac/ reaches for a global: every collaborator arrives through a
constructor, so tests can build a container against an in-memory database
and swap any piece.

Construction order follows the dependency graph leaf-first:
  db engine -> stores -> cache -> catalog/graph/roles/assignments
  -> email/invitations -> auth service -> resolver -> decision engine
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.engine import Engine

from auth.email import EmailSender, build_email_sender
from auth.invitations import InvitationService
from auth.service import AuthService
from auth.store import InvitationStore, PrincipalStore, TokenStore
from cache.store import ActionCache, MemoryActionCache
from core.config import Settings
from db.schema import make_engine
from rbac.assignments import RoleAssignments
from rbac.bootstrap import BootstrapReport, bootstrap_admin
from rbac.catalog import PermissionCatalog
from rbac.engine import AuthorizationEngine
from rbac.graph import RolePermissionGraph
from rbac.resolver import RouteActionResolver
from rbac.roles import RoleRegistry
from rbac.store import RBACStore

logger = logging.getLogger("gatekeeper.container")


@dataclass
class Container:
    settings: Settings
    db: Engine
    cache: ActionCache
    rbac_store: RBACStore
    principals: PrincipalStore
    token_store: TokenStore
    invitation_store: InvitationStore
    catalog: PermissionCatalog
    graph: RolePermissionGraph
    roles: RoleRegistry
    assignments: RoleAssignments
    email: EmailSender
    invitations: InvitationService
    auth: AuthService
    resolver: RouteActionResolver
    engine: AuthorizationEngine

    def bootstrap(self) -> BootstrapReport:
        return bootstrap_admin(
            self.settings,
            roles=self.roles,
            principals=self.principals,
            assignments=self.assignments,
            catalog=self.catalog,
            graph=self.graph,
        )

    def sweep(self) -> dict[str, int]:
        """Purge expired blacklist rows, expired invitations and stale cache entries."""
        return {
            "revoked_tokens": self.auth.sweep_revoked_tokens(),
            "invitation_tokens": self.invitations.cleanup_expired(),
            "cache_entries": self.cache.purge_expired(),
        }

    def close(self) -> None:
        self.cache.clear()
        self.db.dispose()


def build_container(settings: Settings, db: Engine | None = None) -> Container:
    db = db if db is not None else make_engine(settings.database_url)

    rbac_store = RBACStore(db)
    principals = PrincipalStore(db)
    token_store = TokenStore(db)
    invitation_store = InvitationStore(db)

    cache = MemoryActionCache(
        maxsize=settings.permission_cache_size,
        ttl=settings.permission_cache_ttl_seconds,
    )
    catalog = PermissionCatalog(rbac_store, cache)
    graph = RolePermissionGraph(rbac_store)
    roles = RoleRegistry(rbac_store)
    assignments = RoleAssignments(rbac_store, principals)

    email = build_email_sender(settings.email_provider, settings.email_from, settings.sendgrid_api_key)
    invitations = InvitationService(invitation_store, principals)
    auth = AuthService(settings, principals, token_store, invitations, email)

    resolver = RouteActionResolver(catalog)
    engine = AuthorizationEngine(auth, resolver, graph)

    logger.info("Service container built (database=%s)", db.url.render_as_string(hide_password=True))
    return Container(
        settings=settings,
        db=db,
        cache=cache,
        rbac_store=rbac_store,
        principals=principals,
        token_store=token_store,
        invitation_store=invitation_store,
        catalog=catalog,
        graph=graph,
        roles=roles,
        assignments=assignments,
        email=email,
        invitations=invitations,
        auth=auth,
        resolver=resolver,
        engine=engine,
    )
