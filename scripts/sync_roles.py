"""Seed the configured roles and permissions, apply the seed map, optionally prune.

Usage:
    uv run python -m scripts.sync_roles [--guard G] [--team-id T] [--prune]
        [--dry-run] [--no-map] [--verbose]

Steps: seed roles, seed permissions, sync the seed map (unless --no-map),
prune permissions missing from the catalogue (--prune), refresh labels and
descriptions, flush every cache entry.
--dry-run prints what the seed map would assign and writes nothing.
--prune needs the seed map, so it cannot be combined with --no-map.
All imports use tenant_roles.*.
"""

import argparse
import asyncio
import sys
from functools import partial

from tenant_roles.application.services import CatalogueSeeder, RolePermissionSyncService
from tenant_roles.core.config import get_settings
from tenant_roles.core.guard import GuardResolver
from tenant_roles.core.tenant_context import build_tenant_context
from tenant_roles.domain.exceptions import RolesException
from tenant_roles.infrastructure.cache import CacheKeyBuilder, build_cache_backend
from tenant_roles.infrastructure.messaging import (
    ClearPermissionCacheListener,
    InProcessEventDispatcher,
)
from tenant_roles.infrastructure.persistence.database import (
    dispose_engine,
    get_session_factory,
)
from tenant_roles.infrastructure.persistence.repositories import (
    PermissionRepository,
    RolePermissionRepository,
    RoleRepository,
    TenantScope,
)
from tenant_roles.infrastructure.persistence.transaction import atomic, run_after_commit
from tenant_roles.shared.telemetry import setup_logging


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Sync configured roles and permissions to the database"
    )
    parser.add_argument("--guard", help="Guard to sync (default: configured guard)")
    parser.add_argument("--team-id", help="Team/tenant id to sync for (team_scoped mode)")
    parser.add_argument(
        "--prune",
        action="store_true",
        help=(
            "Delete permissions of the guard that are not in the configured catalogue "
            "(runs with the seed map sync; not allowed with --no-map)"
        ),
    )
    parser.add_argument(
        "--dry-run", action="store_true", help="Show the role -> permission mapping only"
    )
    parser.add_argument("--no-map", action="store_true", help="Skip applying the seed map")
    parser.add_argument("--verbose", action="store_true", help="Print every synced permission")
    args = parser.parse_args(argv)
    if args.prune and args.no_map:
        parser.error("--prune runs with the seed map sync and cannot be combined with --no-map")
    return args


def _print_sync_result(result: dict, verbose: bool) -> None:
    for synced in result["synced"]:
        print(f"  {synced['role']}: {synced['permissions_count']} permissions")
        if verbose:
            for name in synced["permissions"]:
                print(f"    - {name}")
    for error in result["errors"]:
        print(f"  ! {error['role']}: {error['error']}", file=sys.stderr)
    for pruned in result.get("pruned", []):
        print(f"  pruned {pruned['permission']} ({pruned['method']})")
    for error in result.get("prune_errors", []):
        print(f"  ! prune {error['permission']}: {error['error']}", file=sys.stderr)


async def main(argv: list[str] | None = None) -> int:
    """Run the sync; returns the process exit code."""
    args = parse_args(argv)
    settings = get_settings()
    setup_logging(settings)

    tenant_context = build_tenant_context(settings)
    if args.team_id:
        tenant_context.set_tenant_id(args.team_id)
    guard_resolver = GuardResolver(settings)
    cache = build_cache_backend(settings)
    await cache.connect()
    cache_keys = CacheKeyBuilder(settings, cache, tenant_context, guard_resolver)
    events = InProcessEventDispatcher()
    ClearPermissionCacheListener(cache_keys).register(events)

    exit_code = 0
    try:
        guard = guard_resolver.validate(args.guard) if args.guard else guard_resolver.guard()
        session_factory = get_session_factory()
        with guard_resolver.override(guard):
            async with session_factory() as session:
                async with session.begin():
                    scope = TenantScope(tenant_context)
                    role_repo = RoleRepository(session, scope)
                    permission_repo = PermissionRepository(session, scope)
                    transaction = partial(atomic, session)
                    sync_service = RolePermissionSyncService(
                        settings,
                        guard_resolver,
                        cache_keys,
                        role_repo,
                        permission_repo,
                        RolePermissionRepository(session),
                        events,
                        transaction,
                    )
                    seeder = CatalogueSeeder(
                        settings,
                        guard_resolver,
                        cache_keys,
                        role_repo,
                        permission_repo,
                        sync_service,
                        transaction,
                    )

                    if args.dry_run:
                        print(f"Dry run for guard {guard} (nothing is written)")
                        for role, names in (await seeder.preview_mapping(guard)).items():
                            print(f"  {role}: {len(names)} permissions")
                            if args.verbose:
                                for name in names:
                                    print(f"    - {name}")
                        return 0

                    roles = await seeder.sync_roles(guard)
                    permissions = await seeder.sync_permissions(guard)
                    print(f"Guard {guard}: {len(roles)} roles and {len(permissions)} permissions created")
                    if not args.no_map:
                        result = await sync_service.sync_from_config(prune=args.prune)
                        _print_sync_result(result, args.verbose)
                        if result["errors"] or result.get("prune_errors"):
                            exit_code = 1
                    updated = await seeder.update_labels_and_descriptions(guard)
                    print(f"Refreshed labels/descriptions on {updated} rows")
                await run_after_commit(session)
        await cache_keys.flush_all()
    except RolesException as e:
        print(f"Error: {e.message}", file=sys.stderr)
        exit_code = 1
    finally:
        await cache.disconnect()
        await dispose_engine()
    return exit_code


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
