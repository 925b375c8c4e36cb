from __future__ import annotations

import argparse
import os
import sys
import threading
from typing import Optional

import uvicorn

from sessionguard.core.auth.service import build_authenticator
from sessionguard.core.config import ConfigManager
from sessionguard.core.config.paths import ConfigFsPaths
from sessionguard.core.errors import ConfigError
from sessionguard.core.events.bus import EventBus
from sessionguard.core.logger import setup_logging
from sessionguard.core.security_events import SecurityAuditLogger
from sessionguard.core.sessions.sweeper import ExpirySweeper
from sessionguard.core.store.records import JsonFileRecordStore, MemoryRecordStore, RecordStore
from sessionguard.web.api import create_app


class WebServerHandle:
    def __init__(self, *, app, host: str, port: int, logger):  # noqa: ANN001
        self.app = app
        self.host = host
        self.port = port
        self.logger = logger
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        cfg = uvicorn.Config(self.app, host=self.host, port=self.port, log_level="info")
        self._server = uvicorn.Server(cfg)

        def run() -> None:
            assert self._server is not None
            self._server.run()

        self._thread = threading.Thread(target=run, name="sessionguard-web", daemon=True)
        self._thread.start()
        self.logger.info(f"Web server started on http://{self.host}:{self.port}")

    def wait(self) -> None:
        while self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=0.5)

    def stop(self) -> None:
        if self._server is not None:
            self._server.should_exit = True
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=3.0)


def _open_store(cm: ConfigManager, backend: str, path: str, logger) -> RecordStore:  # noqa: ANN001
    if backend == "memory":
        logger.warning("Using in-memory record store: sessions are lost on exit.")
        return MemoryRecordStore()
    return JsonFileRecordStore(cm.fs.resolve(path), logger=logger)


def main() -> None:
    ap = argparse.ArgumentParser(description="sessionguard: session lifecycle and login-conflict service")
    ap.add_argument("--root", default=".", help="Directory holding config/, logs/ and data/.")
    ap.add_argument("--host", default=None, help="Bind host (overrides config/web.json).")
    ap.add_argument("--port", type=int, default=None, help="Bind port (overrides config/web.json).")
    ap.add_argument("--memory", action="store_true", help="Use an in-memory record store.")
    ap.add_argument("--print-config", action="store_true", help="Print the effective config and exit.")
    args = ap.parse_args()

    logger = setup_logging(os.path.join(args.root, "logs"))
    cm = ConfigManager(fs=ConfigFsPaths(args.root), logger=logger)
    try:
        cfg = cm.load_all()
    except ConfigError as e:
        logger.error(f"Config invalid: {e.user_message} {e.context}")
        sys.exit(2)
    if args.print_config:
        print(cfg.model_dump_json(indent=2))
        return

    store = _open_store(cm, "memory" if args.memory else cfg.store.backend, cfg.store.path, logger)
    bus = EventBus(cfg=cfg.events, logger=logger)
    audit = SecurityAuditLogger(path=cm.fs.resolve(cfg.security.audit_log_path))
    auth = build_authenticator(cfg, store, audit_logger=audit, event_bus=bus, logger=logger)

    sweeper = ExpirySweeper(auth.registry, interval_seconds=cfg.sessions.sweep_interval_seconds, lockout=auth.lockout, logger=logger)
    swept = sweeper.run_once()
    if swept:
        logger.info(f"Startup sweep removed {swept} expired sessions.")
    sweeper.start()

    web: Optional[WebServerHandle] = None
    try:
        if not cfg.web.enabled:
            logger.info("Web disabled in config/web.json; running sweeper only. Ctrl+C to exit.")
            threading.Event().wait()
        app = create_app(auth, logger=logger, sweeper=sweeper, event_bus=bus)
        web = WebServerHandle(app=app, host=args.host or cfg.web.bind_host, port=int(args.port or cfg.web.port), logger=logger)
        web.start()
        web.wait()
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down.")
    finally:
        if web is not None:
            web.stop()
        sweeper.stop()
        auth.credentials.shutdown()
        bus.shutdown()
        logger.info("Shutdown complete.")


if __name__ == "__main__":
    main()
