#!/usr/bin/env python3
"""Health assistant gateway Flask application.

This module exposes a Flask app that wraps the HealthAssistantGateway class,
which encapsulates the route handlers and supporting helpers. Chat history is
kept in MongoDB when ``HEALTHASSIST_MONGODB_URI`` is configured and in a local
JSON state file otherwise, so the gateway runs without any database.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from copy import deepcopy
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Type

from flask import Flask, Response, jsonify, request
from pydantic import BaseModel, ValidationError
from pymongo.mongo_client import MongoClient
from pymongo.server_api import ServerApi

from healthassist_config import (
    CHAT_COLLECTION,
    DATA_DIR,
    HEALTHASSIST_DB,
    HEALTHASSIST_DEBUG,
    HEALTHASSIST_MONGODB_URI,
    OPENAI_MODEL,
    PORT,
)
from healthassist_generator import (
    generate_chat_reply,
    generate_documents,
    generate_graphics_data,
)
from graphics_pydantic_validator import ChatMessage, ChatRequest, DiseaseRequest

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

DEFAULT_HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 500


class GatewayError(Exception):
    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class InvalidRequest(GatewayError):
    status_code = 400


class UpstreamFailure(GatewayError):
    status_code = 502


# ---------------------------------------------------------------------------
# Chat history persistence
# ---------------------------------------------------------------------------


class StateStore:
    """Simple JSON-backed store used when MongoDB is not configured."""

    def __init__(self, path: Path):
        self.path = path
        self.lock = threading.Lock()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.state: Dict[str, Any] = self._load()

    # ------------------------------------------------------------------
    def _load(self) -> Dict[str, Any]:
        if self.path.exists():
            with self.path.open("r", encoding="utf-8") as fh:
                try:
                    return json.load(fh)
                except json.JSONDecodeError:
                    logger.warning("State file corrupt; starting with empty state")
        return {"collections": {}}

    def _persist(self) -> None:
        tmp_path = self.path.with_suffix(".tmp")
        with tmp_path.open("w", encoding="utf-8") as fh:
            json.dump(self.state, fh, ensure_ascii=False, indent=2)
        tmp_path.replace(self.path)

    # ------------------------------------------------------------------
    def get_collection(self, name: str) -> List[Dict[str, Any]]:
        with self.lock:
            col = self.state.setdefault("collections", {}).setdefault(name, [])
            return deepcopy(col)

    def append_document(self, name: str, document: Dict[str, Any]) -> None:
        with self.lock:
            self.state.setdefault("collections", {}).setdefault(name, []).append(deepcopy(document))
            self._persist()


class MongoCollectionAdapter:
    """Adapter around a pymongo collection to provide a uniform API."""

    backend = "mongodb"

    def __init__(self, collection):
        self.collection = collection

    def insert_one(self, document: Dict[str, Any]):
        return self.collection.insert_one(dict(document))

    def find_recent(self, limit: int) -> List[Dict[str, Any]]:
        cursor = self.collection.find({}, {"_id": 0}).sort("_id", -1).limit(limit)
        return list(reversed(list(cursor)))


class LocalCollectionAdapter:
    """Minimal Mongo-like collection backed by StateStore."""

    backend = "local"

    def __init__(self, state_store: StateStore, name: str):
        self.state_store = state_store
        self.name = name

    def insert_one(self, document: Dict[str, Any]):
        doc = deepcopy(document)
        doc.setdefault("_id", uuid.uuid4().hex)
        self.state_store.append_document(self.name, doc)
        return type("InsertOneResult", (), {"inserted_id": doc["_id"]})()

    def find_recent(self, limit: int) -> List[Dict[str, Any]]:
        docs = self.state_store.get_collection(self.name)[-limit:]
        for doc in docs:
            doc.pop("_id", None)
        return docs


# ---------------------------------------------------------------------------
# Gateway implementation
# ---------------------------------------------------------------------------


class HealthAssistantGateway:
    def __init__(
        self,
        data_dir: Optional[Path] = None,
        client: Optional[Any] = None,
        mongo_uri: Optional[str] = None,
    ) -> None:
        # Completion client override; None means the shared OpenAI client.
        self.client = client
        self.data_dir = data_dir or DATA_DIR
        self.data_dir.mkdir(parents=True, exist_ok=True)

        mongo_uri = HEALTHASSIST_MONGODB_URI if mongo_uri is None else mongo_uri
        self.mongo_client = None
        if mongo_uri:
            self.mongo_client = MongoClient(mongo_uri, server_api=ServerApi("1"))
            self.chat_collection = MongoCollectionAdapter(
                self.mongo_client[HEALTHASSIST_DB][CHAT_COLLECTION]
            )
        else:
            logger.info("MongoDB URI not provided; using local state store")
            self.state_store = StateStore(self.data_dir / "state.json")
            self.chat_collection = LocalCollectionAdapter(self.state_store, CHAT_COLLECTION)

    # ------------------------------------------------------------------
    @staticmethod
    def set_cors_headers(response: Response) -> Response:
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
        response.headers["Access-Control-Max-Age"] = "86400"
        return response

    @staticmethod
    def _options_ok() -> Response:
        return HealthAssistantGateway.set_cors_headers(jsonify(success=True))

    @staticmethod
    def _parse_body(model: Type[BaseModel], payload: Any) -> Any:
        if not isinstance(payload, dict):
            raise InvalidRequest("Request body must be a JSON object")
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            details = [
                {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
                for err in exc.errors()
            ]
            raise InvalidRequest("Invalid input format", details) from exc

    def _store_message(self, message: ChatMessage) -> None:
        self.chat_collection.insert_one(message.model_dump(mode="json"))

    # ------------------------------------------------------------------
    # Route handlers (public methods)
    # ------------------------------------------------------------------

    def handle_chat(self, payload: Any) -> Dict[str, Any]:
        chat_request = self._parse_body(ChatRequest, payload)
        self._store_message(
            ChatMessage(
                id=str(uuid.uuid4()),
                content=chat_request.message,
                sender="user",
                timestamp=datetime.now(),
            )
        )
        try:
            reply = generate_chat_reply(chat_request.message, client=self.client)
        except Exception as exc:
            logger.exception("Chat completion failed")
            raise UpstreamFailure(f"Chat completion failed: {exc}") from exc
        self._store_message(reply)
        return reply.model_dump(mode="json")

    def handle_chat_history(self, raw_limit: Optional[str]) -> Dict[str, Any]:
        if raw_limit is None:
            limit = DEFAULT_HISTORY_LIMIT
        else:
            try:
                limit = int(raw_limit)
            except ValueError as exc:
                raise InvalidRequest("limit must be an integer") from exc
        limit = max(1, min(limit, MAX_HISTORY_LIMIT))
        return {"messages": self.chat_collection.find_recent(limit)}

    def handle_documents(self, payload: Any) -> Dict[str, Any]:
        disease_request = self._parse_body(DiseaseRequest, payload)
        logger.info("Generating documents for %s", disease_request.disease)
        result = generate_documents(disease_request.disease, client=self.client)
        return result.model_dump(mode="json")

    def handle_graphics(self, payload: Any) -> Dict[str, Any]:
        disease_request = self._parse_body(DiseaseRequest, payload)
        logger.info("Generating graphics data for %s", disease_request.disease)
        result = generate_graphics_data(disease_request.disease, client=self.client)
        return result.model_dump(mode="json")

    def handle_health(self) -> Dict[str, Any]:
        return {
            "status": "ok",
            "model": OPENAI_MODEL,
            "storage": self.chat_collection.backend,
        }


# ---------------------------------------------------------------------------
# Flask application setup
# ---------------------------------------------------------------------------


def create_app(debug: bool = False, gateway: Optional[HealthAssistantGateway] = None) -> Flask:
    gateway = gateway or HealthAssistantGateway()
    app = Flask(__name__)
    app.debug = debug
    app.json.ensure_ascii = False

    @app.after_request
    def apply_cors_headers(response):
        return gateway.set_cors_headers(response)

    @app.errorhandler(GatewayError)
    def handle_gateway_error(exc: GatewayError):
        body: Dict[str, Any] = {"error": exc.message}
        if exc.details is not None:
            body["details"] = exc.details
        return jsonify(body), exc.status_code

    @app.route("/api/chat", methods=["POST", "OPTIONS"])
    def chat():
        if request.method == "OPTIONS":
            return gateway._options_ok()
        result = gateway.handle_chat(request.get_json(silent=True))
        return jsonify(result)

    @app.route("/api/chat/history", methods=["GET", "OPTIONS"])
    def chat_history():
        if request.method == "OPTIONS":
            return gateway._options_ok()
        result = gateway.handle_chat_history(request.args.get("limit"))
        return jsonify(result)

    @app.route("/api/documents", methods=["POST", "OPTIONS"])
    def documents():
        if request.method == "OPTIONS":
            return gateway._options_ok()
        result = gateway.handle_documents(request.get_json(silent=True))
        return jsonify(result)

    @app.route("/api/graphics", methods=["POST", "OPTIONS"])
    def graphics():
        if request.method == "OPTIONS":
            return gateway._options_ok()
        result = gateway.handle_graphics(request.get_json(silent=True))
        return jsonify(result)

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify(gateway.handle_health())

    return app


if __name__ == "__main__":
    app = create_app(debug=HEALTHASSIST_DEBUG)
    app.run(debug=HEALTHASSIST_DEBUG, host="0.0.0.0", port=PORT)
