import os

from svc_instrument.core.directives import RpcTarget

DEFAULT_RUNTIME_PATH = "svcframework.dev/runtime"
RUNTIME_ALIAS = "__svc_runtime"
WRAPPER_PREFIX = "__svc_"
WRAPPERS_FILE_NAME = "svc_rpc_wrappers.go"


def get_runtime_path() -> str:
    return os.getenv("SVC_INSTRUMENT_RUNTIME_PATH", DEFAULT_RUNTIME_PATH)


def wrapper_name(rpc: RpcTarget) -> str:
    return f"{WRAPPER_PREFIX}{rpc.service}_{rpc.name}"
