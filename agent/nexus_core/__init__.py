"""
nexus_core — Field Tracking Agent
=================================
Architecture: one asyncio event loop owns all state; blocking HTTP calls
run on short-lived worker threads (asyncio.to_thread).

  constants.py     → Version, thresholds, preference keys
  config.py        → Paths, logging, config load/save
  storage.py       → PreferencesStore (JSON) + SecureStore (Fernet)
  credentials.py   → Token rules, two-tier CredentialStore
  http_client.py   → HTTP session with retry/pooling
  api.py           → Server API calls (setUnit, checkStatus, updateLocation)
  network.py       → Connectivity probe, offline buffer
  auth.py          → AuthenticationService (login/logout, session cache)
  validator.py     → Debounced deployment-code check
  login.py         → LoginController (form state, login gate)
  restart_policy.py→ should_restart() decision
  background.py    → BackgroundService + disable flag
  watchdog.py      → Liveness marker, kill detection
  purge.py         → DataPurgeCoordinator
  logout.py        → LogoutService
  task_removed.py  → OS task-removal hook (separate process)
  app.py           → FieldApp composition root
  runner.py        → CLI main() + auto-restart wrapper
"""
