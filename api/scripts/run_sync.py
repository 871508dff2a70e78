"""
CLI: historial de partidas GeoGuessr -> base de datos (one-way sync).

Uso recomendado:
  - Ejecutar como job (cron/systemd timer) o a mano para depurar un usuario.
  - Corre el mismo pipeline que POST /api/v1/sync/refresh, pero en primer plano.

Variables de entorno:
  - DATABASE_URL (o DATABASE_* por componentes)
  - GEOGUESSR_* / SYNC_* opcionales (ver core/config.py)

Ejecución:
  python scripts/run_sync.py --user-id <id>
  python scripts/run_sync.py --user-id <id> --max-pages 5 --force
  python scripts/run_sync.py --cookie "_ncfa=..." --test-connection

Exit code 0 solo si el run terminó sin errores.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger
from dotenv import load_dotenv

# Permite ejecutar este script desde cualquier cwd sin configurar PYTHONPATH.
# La carpeta "api" contiene el paquete raíz `geostats/`.
_API_ROOT = Path(__file__).resolve().parents[1]
if str(_API_ROOT) not in sys.path:
    sys.path.insert(0, str(_API_ROOT))

# api/.env primero, luego el .env de la raíz del repo
load_dotenv(_API_ROOT / ".env", override=False)
load_dotenv(_API_ROOT.parent / ".env", override=False)

from geostats.infrastructure.database.session import AsyncSessionLocal, close_db
from geostats.infrastructure.external.geoguessr_sync.sync_config import sync_options_from_settings
from geostats.infrastructure.external.geoguessr_sync.sync_service import GameSyncService, build_client
from geostats.infrastructure.external.geoguessr_sync.types import SyncResult
from geostats.infrastructure.repositories.user_repository import UserRepository

CLI_USER_ID = "cli"


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sincroniza el historial de partidas de GeoGuessr")
    parser.add_argument("--user-id", help="Usuario guardado (usa su cookie de sesión)")
    parser.add_argument("--cookie", help="Cookie de sesión explícita (ignora la guardada)")
    parser.add_argument("--max-pages", type=int, default=None, help="Tope de páginas del feed")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Re-descarga partidas ya sincronizadas y reemplaza sus rondas.",
    )
    parser.add_argument(
        "--test-connection",
        action="store_true",
        help="Solo verifica que la cookie sea válida (no sincroniza).",
    )
    args = parser.parse_args(argv)
    if not args.user_id and not args.cookie:
        parser.error("se requiere --user-id o --cookie")
    if args.max_pages is not None and args.max_pages < 1:
        parser.error("--max-pages debe ser >= 1")
    return args


async def _resolve_cookie(user_id: str) -> str:
    async with AsyncSessionLocal() as db:
        user = await UserRepository(db).get_by_id(user_id)
    if user is None:
        raise SystemExit(f"Usuario no encontrado: {user_id}")
    if not user.session_cookie:
        raise SystemExit(f"El usuario {user_id} no tiene cookie de sesión")
    return user.session_cookie


def _print_summary(result: SyncResult) -> None:
    print(f"fase:         {result.phase.value}")
    print(f"éxito:        {result.success}")
    print(f"páginas:      {result.pages_processed}")
    print(f"descubiertas: {result.items_discovered}")
    print(f"nuevas:       {result.items_created}")
    print(f"actualizadas: {result.items_updated}")
    print(f"omitidas:     {result.items_skipped}")
    print(f"duración:     {result.duration_ms}ms")
    for error in result.errors:
        print(f"  error [{error.identifier}]: {error.message}")


async def _run(args: argparse.Namespace) -> int:
    cookie = args.cookie or await _resolve_cookie(args.user_id)
    client = build_client(cookie)
    try:
        if args.test_connection:
            connected = await asyncio.to_thread(client.test_connection)
            print("Conexión OK" if connected else "Cookie inválida o expirada")
            return 0 if connected else 1

        options = sync_options_from_settings().with_overrides(
            max_pages=args.max_pages,
            force_refresh=args.force,
        )
        service = GameSyncService(
            client=client,
            session_factory=AsyncSessionLocal,
            options=options,
            observer=lambda event: logger.debug(
                f"[geo-sync] {event.phase.value} {event.processed_count}/{event.total_count}: {event.message}"
            ),
        )
        logger.info("Iniciando GeoGuessr -> DB sync...")
        result = await service.run(args.user_id or CLI_USER_ID)
        _print_summary(result)
        return 0 if result.success else 1
    finally:
        client.close()
        await close_db()


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
