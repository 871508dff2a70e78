"""
Pipeline de sincronización one-way: historial de partidas GeoGuessr -> base de datos.

Se ejecuta como run en background (disparado por el API) o como job desde
scripts/run_sync.py; nunca dentro del request/response.

Objetivos de diseño:
- Idempotencia: se puede ejecutar N veces sin duplicar partidas ni rondas.
- Incremental: las partidas con details_fetched se omiten (salvo force_refresh).
- Fallos aislados: una partida rota no aborta el run, queda en errors.
- Ritmo acotado: todas las requests pasan por un rate limiter.
"""
