import logging
from prometheus_client import Counter, Summary, start_http_server

RPC_REQUEST_TIME = Summary(
    "bundler_client_rpc_request_seconds",
    "Time spent waiting for bundler json-rpc responses",
    ["method"],
)
RPC_REQUEST_ERRORS = Counter(
    "bundler_client_rpc_request_errors",
    "Bundler json-rpc calls that failed",
    ["method", "kind"],
)
RECEIPT_POLLS = Counter(
    "bundler_client_receipt_polls",
    "eth_getUserOperationReceipt queries issued while waiting for a receipt",
)
RECEIPT_WAIT_OUTCOMES = Counter(
    "bundler_client_receipt_wait_outcomes",
    "Finished receipt waits by terminal state",
    ["state"],
)
USER_OPERATIONS_SENT = Counter(
    "bundler_client_user_operations_sent",
    "User operations accepted by the bundler",
    ["entrypoint_version"],
)


def run_metrics_server(host="localhost", port=8000):
    """
    run prometheus metrics server
    """
    logging.info(f"Starting Metrics Http Server at: {host}:{port}")
    start_http_server(port, addr=host)
