from importlib import import_module

__all__ = [
    "ActivityStore",
    "ActivitySynchronizer",
    "CopyExecutionEngine",
    "DataApiClient",
    "OrderClient",
]

_LAZY_EXPORTS = {
    "ActivityStore": ("services.activity_store", "ActivityStore"),
    "ActivitySynchronizer": ("services.activity_sync", "ActivitySynchronizer"),
    "CopyExecutionEngine": ("services.copy_executor", "CopyExecutionEngine"),
    "DataApiClient": ("services.data_api", "DataApiClient"),
    "OrderClient": ("services.order_client", "OrderClient"),
}


def __getattr__(name):
    if name not in _LAZY_EXPORTS:
        raise AttributeError(f"module 'services' has no attribute {name!r}")

    module_name, attr_name = _LAZY_EXPORTS[name]
    module = import_module(module_name)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value
