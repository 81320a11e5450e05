# backend/app.py
"""
Ballot Ledger API
- Signature-bound voter registration (wallet signs address + constituency)
- One vote per registered address, recorded on-chain first
- Off-chain voter store kept as a projection of the contract
"""

import datetime
import logging
from functools import wraps

import jwt
from flask import Flask, request, jsonify, g
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from backend.config.secret import (
    ABI_PATH,
    ADMIN_PRIVATE_KEY,
    CONFIRMATION_TIMEOUT,
    CONTRACT_ADDRESS,
    DATABASE_URL,
    JWT_SECRET,
    LOG_LEVEL,
    PORT,
    REGISTER_GAS_BUFFER,
    RPC_URL,
    VOTE_GAS_PERCENT,
)
from backend.coordinators import RegistrationCoordinator, VoteRequest, VotingCoordinator
from backend.errors import MalformedRequest, VotingError
from backend.identity import RegistrationClaim
from backend.ledger import LedgerGateway
from backend.models import init_db
from backend.observability import (
    CORRELATION_HEADER,
    bind_request_context,
    clear_request_context,
    configure_logging,
)
from backend.store import VoterRecordStore

logger = logging.getLogger(__name__)


def build_store(database_url=DATABASE_URL):
    return VoterRecordStore(init_db(database_url))


def build_ledger():
    return LedgerGateway.from_config(
        RPC_URL,
        CONTRACT_ADDRESS,
        ADMIN_PRIVATE_KEY,
        abi_path=ABI_PATH,
        register_gas_buffer=REGISTER_GAS_BUFFER,
        vote_gas_percent=VOTE_GAS_PERCENT,
        confirmation_timeout=CONFIRMATION_TIMEOUT,
    )


def create_app(store=None, ledger=None, jwt_secret=None):
    if store is None:
        store = build_store()
    if ledger is None:
        ledger = build_ledger()

    app = Flask(__name__)
    CORS(app)
    app.config["JWT_SECRET"] = JWT_SECRET if jwt_secret is None else jwt_secret

    registration = RegistrationCoordinator(store, ledger)
    voting = VotingCoordinator(store, ledger)
    app.extensions["ballot"] = {
        "store": store,
        "ledger": ledger,
        "registration": registration,
        "voting": voting,
    }

    # ============================================================
    #                    REQUEST CONTEXT
    # ============================================================
    @app.before_request
    def start_request():
        g.correlation_id = bind_request_context(request.headers.get(CORRELATION_HEADER))

    @app.after_request
    def tag_response(response):
        correlation_id = g.get("correlation_id")
        if correlation_id:
            response.headers[CORRELATION_HEADER] = correlation_id
        return response

    @app.teardown_request
    def end_request(exc):
        clear_request_context()

    # ============================================================
    #                    ERROR HANDLERS
    # ============================================================
    @app.errorhandler(VotingError)
    def handle_voting_error(e):
        logger.info(f"{request.method} {request.path} failed ({e.kind}): {e.reason}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        if isinstance(e, HTTPException):
            return e
        logger.exception(f"Unhandled error on {request.method} {request.path}")
        return jsonify({"error": "Request failed", "kind": "InternalError"}), 400

    # ============================================================
    #                    AUTH DECORATOR
    # ============================================================
    def admin_required(f):
        @wraps(f)
        def wrap(*args, **kwargs):
            secret = app.config["JWT_SECRET"]
            if not secret:
                return f(*args, **kwargs)
            token = request.headers.get("Authorization")
            if not token:
                return jsonify({"error": "Token missing"}), 401
            try:
                token = token.replace("Bearer ", "").strip()
                payload = jwt.decode(token, secret, algorithms=["HS256"])
            except jwt.ExpiredSignatureError:
                return jsonify({"error": "Token expired"}), 401
            except jwt.InvalidTokenError:
                return jsonify({"error": "Invalid token"}), 401
            if payload.get("role") != "admin":
                return jsonify({"error": "Admin role required"}), 401
            g.admin = payload.get("sub")
            return f(*args, **kwargs)
        return wrap

    # ============================================================
    #                    VOTER APIs
    # ============================================================
    @app.route("/register", methods=["POST"])
    def register():
        claim = RegistrationClaim.from_json(request.get_json(silent=True))
        result = registration.register(claim)
        return jsonify({
            "message": result.message,
            "voter": result.voter.to_dict(),
            "txHash": result.tx_hash,
        })

    @app.route("/vote", methods=["POST"])
    def vote():
        vote_request = VoteRequest.from_json(request.get_json(silent=True))
        result = voting.vote(vote_request)
        return jsonify({"message": result.message, "txHash": result.tx_hash})

    # ============================================================
    #                    CANDIDATE APIs
    # ============================================================
    @app.route("/candidates", methods=["GET"])
    def candidates():
        return jsonify(ledger.get_candidate_list())

    @app.route("/add-candidate", methods=["POST"])
    @admin_required
    def add_candidate():
        data = request.get_json(silent=True) or {}
        name = data.get("candidateName")
        if not isinstance(name, str) or not name.strip():
            raise MalformedRequest("Candidate name is required")

        receipt = ledger.add_candidate(name)
        logger.info(f"Candidate {name} added by {g.get('admin') or 'anonymous'}, tx {receipt.tx_hash}")
        return jsonify({
            "message": f"Candidate {name} registered successfully",
            "txHash": receipt.tx_hash,
        })

    # ============================================================
    #                    SYSTEM STATUS APIs
    # ============================================================
    @app.route("/test-contract", methods=["GET"])
    def test_contract():
        code = ledger.contract_code()
        if code == "0x":
            return jsonify({"error": "Contract not found at specified address"}), 400
        return jsonify({
            "status": "Contract found",
            "address": ledger.contract_address,
            "bytecode": code,
        })

    @app.route("/health", methods=["GET"])
    def health():
        try:
            ethereum = ledger.snapshot()
            database = {"connected": store.ping(), "voters": store.count()}
            contract = {"address": ledger.contract_address, "deployed": ledger.has_code()}
        except VotingError as e:
            logger.warning(f"Health check failed ({e.kind}): {e.reason}")
            return jsonify({"status": "error", "error": e.reason}), 500
        except Exception:
            logger.exception("Health check failed")
            return jsonify({"status": "error", "error": "Health check failed"}), 500

        return jsonify({
            "status": "ok",
            "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "ethereum": ethereum,
            "database": database,
            "contract": contract,
        })

    return app


# ============================================================
#                    RUN SERVER
# ============================================================
if __name__ == "__main__":
    configure_logging(LOG_LEVEL)
    server = create_app()
    logger.info(f"Starting server on port {PORT} (rpc {RPC_URL}, contract {CONTRACT_ADDRESS})")
    server.run(host="0.0.0.0", port=PORT, threaded=True)
