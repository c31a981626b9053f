# app.py (token provisioning service)

import logging
import os
import threading
from datetime import datetime

import requests
from dotenv import load_dotenv
from flask import Flask, jsonify, request
from flask_sqlalchemy import SQLAlchemy
from werkzeug.middleware.proxy_fix import ProxyFix

from token_provisioner import (
    LAMPORTS_PER_SOL,
    AlreadyExists,
    ConfigError,
    ConfirmationTimeout,
    FaucetRefused,
    InsufficientFunds,
    InvalidMetadata,
    NetworkUnavailable,
    ProvisioningContext,
    ProvisioningError,
    Rejected,
    Step,
    TokenMetadata,
    ensure_funded,
    load_config,
    provision_token,
)

# --- Load Secret Environment Variables ---
load_dotenv()

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

# --- App & Database Setup ---
app = Flask(__name__)

app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

app.config['SQLALCHEMY_DATABASE_URI'] = os.getenv("DATABASE_URL", "sqlite:///provisioning.db")
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
db = SQLAlchemy(app)

# One provisioning run per payer at a time
_run_lock = threading.Lock()
_context = None

ERROR_STATUS = {
    InvalidMetadata: 400,
    InsufficientFunds: 402,
    AlreadyExists: 409,
    FaucetRefused: 429,
    Rejected: 422,
    NetworkUnavailable: 503,
    ConfirmationTimeout: 504,
}


# --- Database Model (one row per provisioning run) ---
class ProvisioningRun(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(32), nullable=False)
    symbol = db.Column(db.String(10), nullable=False)
    uri = db.Column(db.String(200), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    mint = db.Column(db.String(44))
    holding_account = db.Column(db.String(44))
    metadata_address = db.Column(db.String(44))
    metadata_signature = db.Column(db.String(88))
    failed_step = db.Column(db.String(32))
    error = db.Column(db.Text)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "symbol": self.symbol,
            "uri": self.uri,
            "status": self.status,
            "mint": self.mint,
            "holding_account": self.holding_account,
            "metadata_address": self.metadata_address,
            "metadata_signature": self.metadata_signature,
            "failed_step": self.failed_step,
            "error": self.error,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# columns filled in as each step lands
STEP_COLUMNS = {
    Step.CREATE_MINT: "mint",
    Step.HOLDING_ACCOUNT: "holding_account",
    Step.DERIVE_METADATA: "metadata_address",
    Step.SUBMIT_METADATA: "metadata_signature",
}


def init_db():
    with app.app_context():
        db.create_all()


def get_context():
    global _context
    if _context is None:
        _context = ProvisioningContext.from_config(load_config())
    return _context


def error_status(error):
    for kind, status in ERROR_STATUS.items():
        if isinstance(error, kind):
            return status
    return 500


# --- Off-chain metadata check ---
def metadata_uri_matches(uri, name, symbol):
    """Fetch the JSON behind `uri` and check its name and symbol agree with the request."""
    try:
        response = requests.get(uri, timeout=10)
        if response.status_code != 200:
            logger.warning("Metadata URI %s returned %s", uri, response.status_code)
            return False
        data = response.json()
    except (requests.exceptions.RequestException, ValueError) as e:
        logger.warning("Could not fetch metadata URI %s: %s", uri, e)
        return False
    return isinstance(data, dict) and data.get("name") == name and data.get("symbol") == symbol


# --- FUND ENDPOINT ---
@app.route("/fund", methods=['POST'])
def fund():
    try:
        balance = ensure_funded(get_context())
    except ConfigError as e:
        logger.error("Provisioning service is not configured: %s", e)
        return jsonify({"error": "Provisioning service is not configured."}), 500
    except ProvisioningError as e:
        return jsonify({"error": str(e), "kind": e.kind, "step": e.step.value}), error_status(e)
    return jsonify({"balance": balance, "sol": balance / LAMPORTS_PER_SOL})


# --- PROVISION ENDPOINT ---
@app.route("/tokens", methods=['POST'])
def create_token():
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or any(
        not isinstance(data.get(key), str) or not data[key] for key in ("name", "symbol", "uri")
    ):
        return jsonify({"error": "name, symbol and uri are required!"}), 400

    name, symbol, uri = data["name"], data["symbol"], data["uri"]
    try:
        TokenMetadata(name=name, symbol=symbol, uri=uri).validate()
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    if data.get("verify_uri") and not metadata_uri_matches(uri, name, symbol):
        return jsonify({"error": "Metadata at uri does not match name and symbol."}), 400

    if not _run_lock.acquire(blocking=False):
        return jsonify({"error": "Another provisioning run is in progress."}), 409
    try:
        try:
            ctx = get_context()
        except ConfigError as e:
            logger.error("Provisioning service is not configured: %s", e)
            return jsonify({"error": "Provisioning service is not configured."}), 500

        run = ProvisioningRun(name=name, symbol=symbol, uri=uri, status="pending")
        db.session.add(run)
        db.session.commit()
        logger.info("Provisioning run %s started for %s", run.id, symbol)

        def record_step(step, value):
            column = STEP_COLUMNS.get(step)
            if column is not None:
                setattr(run, column, str(value))
                db.session.commit()

        try:
            provision_token(ctx, name, symbol, uri, on_step=record_step)
        except ProvisioningError as e:
            run.status = "failed"
            run.failed_step = e.step.value
            run.error = f"{e.kind}: {e.reason}"
            db.session.commit()
            logger.warning("Provisioning run %s failed at %s: %s", run.id, e.step.value, e.reason)
            return jsonify(run.to_dict()), error_status(e)

        run.status = "succeeded"
        db.session.commit()
        return jsonify(run.to_dict()), 201
    finally:
        _run_lock.release()


@app.route("/tokens/<int:run_id>", methods=['GET'])
def get_run(run_id):
    run = db.session.get(ProvisioningRun, run_id)
    if run is None:
        return jsonify({"error": "No such provisioning run."}), 404
    return jsonify(run.to_dict())


# --- Main Server Run ---
if __name__ == "__main__":
    init_db()
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", "5000")))
