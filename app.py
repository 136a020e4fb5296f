"""TaniBudaya order & payment Flask application."""

from __future__ import annotations

import atexit
import signal
from typing import Any, Dict, Optional

from flask import Flask, jsonify

from common.db.session import build_engine, build_session_factory, init_db
from common.services.logging import configure_logging, log_event
from common.services.midtrans_gateway import MidtransGateway
from common.services.order_service import OrderService
from common.services.payment_service import PaymentService
from common.services.reconciliation import ReconciliationJobs
from common.services.scheduler import JobScheduler
from config import TaniBudayaConfig
from routes.orders import orders_bp
from routes.payments import payments_bp


def build_scheduler(config: TaniBudayaConfig, jobs: ReconciliationJobs) -> JobScheduler:
    scheduler = JobScheduler(initial_delay=config.jobs_initial_delay)
    scheduler.add_job("expired_payments", config.expire_interval, jobs.expire_overdue_payments)
    scheduler.add_job("unpaid_orders", config.unpaid_interval, jobs.cancel_unpaid_orders)
    scheduler.add_job("pending_payments", config.pending_interval, jobs.poll_pending_payments)
    return scheduler


def create_app(
    config: Optional[TaniBudayaConfig] = None,
    *,
    session_factory=None,
    gateway=None,
) -> Flask:
    config = config or TaniBudayaConfig.load()
    configure_logging(config.app.log_level)

    if session_factory is None:
        engine = build_engine(config.app.database_url)
        init_db(engine)
        session_factory = build_session_factory(engine)
    gateway = gateway or MidtransGateway(config.app)

    app = Flask(__name__)
    app.config["SECRET_KEY"] = config.secret_key
    app.config["TANIBUDAYA_CONFIG"] = config

    jobs = ReconciliationJobs(gateway, session_factory)
    components: Dict[str, Any] = {
        "session_factory": session_factory,
        "gateway": gateway,
        "order_service": OrderService(gateway, session_factory),
        "payment_service": PaymentService(gateway, session_factory),
        "reconciliation": jobs,
        "scheduler": build_scheduler(config, jobs),
    }
    app.extensions["tanibudaya_components"] = components

    app.register_blueprint(orders_bp)
    app.register_blueprint(payments_bp)

    @app.get("/health")
    def health():
        return jsonify({"status": "ok", "jobs_running": components["scheduler"].running})

    return app


def main() -> None:
    app = create_app()
    config: TaniBudayaConfig = app.config["TANIBUDAYA_CONFIG"]
    scheduler: JobScheduler = app.extensions["tanibudaya_components"]["scheduler"]

    if config.jobs_enabled:
        scheduler.start()
        atexit.register(scheduler.stop)

        def _shutdown(signum, _frame):
            log_event("info", "server.shutdown", signal=signum)
            scheduler.stop()
            raise SystemExit(0)

        signal.signal(signal.SIGTERM, _shutdown)

    log_event("info", "server.start", host=config.host, port=config.port)
    app.run(host=config.host, port=config.port, debug=False, use_reloader=False)


if __name__ == "__main__":
    main()
