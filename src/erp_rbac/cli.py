"""``erp-rbac`` command line: bootstrap, reporting and permission checks."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TypeVar

import typer

from erp_rbac.common.logging import bind_request_context, setup_logging
from erp_rbac.core.rbac.errors import RbacError
from erp_rbac.core.rbac.types import RoleHierarchyNode
from erp_rbac.db import DatabaseConfig, db, session_scope
from erp_rbac.features.rbac.service import RbacService, initialize_rbac
from erp_rbac.settings import get_settings
from erp_rbac.store.sql import SqlAlchemyRbacStore

T = TypeVar("T")

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="ERP RBAC administration (init/stats/hierarchy/cleanup-expired/check).",
)


def _run(
    action: Callable[[RbacService], Awaitable[T]],
    *,
    seed: bool | None = None,
    actor: str | None = None,
) -> T:
    """Run ``action`` against the configured database in one unit of work."""
    settings = get_settings()
    setup_logging(settings)
    bind_request_context(None, actor)

    async def _main() -> T:
        db.init(DatabaseConfig.from_settings(settings))
        try:
            await db.create_all()
            async with session_scope() as session:
                store = SqlAlchemyRbacStore(session)
                if (settings.seed_on_startup if seed is None else seed):
                    await initialize_rbac(store)
                service = RbacService(store, timezone=settings.default_timezone)
                return await action(service)
        finally:
            await db.dispose()

    try:
        return asyncio.run(_main())
    except RbacError as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _print_tree(hierarchy: dict[str, RoleHierarchyNode], name: str, depth: int = 0) -> None:
    node = hierarchy[name]
    typer.echo(f"{'  ' * depth}{name} (level {node.level})")
    for child in node.children:
        _print_tree(hierarchy, child, depth + 1)


@app.command(name="init", help="Create tables and seed system permissions and roles.")
def init() -> None:
    report = _run(lambda service: service.initialize(), seed=False)
    typer.echo(
        f"✅ Seeded {report.permissions_created} permissions "
        f"({report.permissions_skipped} existing) and {report.roles_created} roles "
        f"({report.roles_skipped} existing)."
    )


@app.command(name="stats", help="Print role, permission and assignment counts as JSON.")
def stats() -> None:
    statistics = _run(lambda service: service.get_statistics())
    typer.echo(statistics.json_text())


@app.command(name="hierarchy", help="Print the role inheritance tree.")
def hierarchy() -> None:
    nodes = _run(lambda service: service.get_role_hierarchy())
    roots = [name for name, node in nodes.items() if node.parent is None]
    for root in roots:
        _print_tree(nodes, root)


@app.command(name="cleanup-expired", help="Deactivate role assignments past their expiry.")
def cleanup_expired() -> None:
    count = _run(lambda service: service.cleanup_expired_assignments())
    typer.echo(f"✅ Deactivated {count} expired assignment(s).")


@app.command(name="assign", help="Assign a role to a user.")
def assign(
    user_id: str = typer.Argument(..., help="User identity."),
    role: str = typer.Argument(..., help="Role name, e.g. unit_admin."),
    actor: str = typer.Option("system", "--actor", help="Identity recorded as assigned_by."),
    reason: str | None = typer.Option(None, "--reason", help="Free-text reason."),
    primary: bool = typer.Option(False, "--primary", help="Mark as the user's primary role."),
    expires_at: datetime | None = typer.Option(
        None, "--expires-at", help="Expiry timestamp (ISO 8601)."
    ),
) -> None:
    meta = {"reason": reason, "is_primary": primary, "expires_at": expires_at}
    assignment = _run(
        lambda service: service.assign_role_to_user(user_id, role, actor, meta), actor=actor
    )
    typer.echo(f"✅ Assigned {role} to {user_id} ({assignment.id}).")


@app.command(name="remove", help="Remove a role from a user.")
def remove(
    user_id: str = typer.Argument(..., help="User identity."),
    role: str = typer.Argument(..., help="Role name."),
    actor: str = typer.Option("system", "--actor", help="Identity recorded as removed_by."),
    reason: str | None = typer.Option(None, "--reason", help="Free-text reason."),
) -> None:
    _run(lambda service: service.remove_role_from_user(user_id, role, actor, reason), actor=actor)
    typer.echo(f"✅ Removed {role} from {user_id}.")


@app.command(name="check", help="Evaluate a permission for a user.")
def check(
    user_id: str = typer.Argument(..., help="User identity."),
    permission: str = typer.Argument(..., help="Permission name, e.g. users.read.regional."),
    ip: str | None = typer.Option(None, "--ip", help="Client IP address."),
    owner: str | None = typer.Option(None, "--owner", help="Owning user of the record."),
    location: str | None = typer.Option(None, "--location", help="Location of the record."),
) -> None:
    context: dict[str, object] = {"ip": ip}
    if owner is not None or location is not None:
        context["scope"] = {"owner_id": owner, "location_id": location}

    decision = _run(lambda service: service.explain_permission(user_id, permission, context))
    typer.echo(json.dumps(decision.model_dump(mode="json"), indent=2))
    if not decision.allowed:
        raise typer.Exit(code=1)


def main() -> None:  # pragma: no cover - console script entry point
    app()


__all__ = ["app", "main"]
