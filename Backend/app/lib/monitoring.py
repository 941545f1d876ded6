# app/lib/monitoring.py
from fastapi import FastAPI
from prometheus_client.registry import CollectorRegistry as Registry
from prometheus_client import Counter, Gauge
from prometheus_fastapi_instrumentator import Instrumentator
from app.core.logging import log

# Separate registry so tests can import this module repeatedly
registry = Registry()

active_chat_streams = Gauge(
    'vibecode_active_chat_streams',
    'Chat turns currently streaming',
    registry=registry
)

live_sandboxes = Gauge(
    'vibecode_live_sandboxes',
    'Sandboxes held by the registry',
    registry=registry
)

tool_calls = Counter(
    'vibecode_tool_calls',
    'Tool calls dispatched, by tool and outcome',
    ['tool', 'status'],
    registry=registry
)


def set_live_sandboxes(n: int):
    live_sandboxes.set(n)


def record_tool_call(tool: str, status: str):
    tool_calls.labels(tool=tool, status=status).inc()


def register_monitoring(app: FastAPI):
    """
    Registers Prometheus monitoring on the FastAPI app.
    Request count/latency come from the instrumentator; /metrics exposes both.
    """
    instrumentator = Instrumentator(
        excluded_handlers=["/metrics"],
        registry=registry
    ).instrument(app)

    instrumentator.expose(app, include_in_schema=False, should_gzip=True)

    log("MONITORING", "Prometheus instrumentation registered at /metrics.")
