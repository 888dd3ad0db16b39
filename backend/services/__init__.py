from importlib import import_module

__all__ = [
    "CrisisServices",
    "build_crisis_services",
    "CrisisAggregator",
    "CrisisMonitor",
    "NotificationService",
]

_LAZY_EXPORTS = {
    "CrisisServices": ("services.container", "CrisisServices"),
    "build_crisis_services": ("services.container", "build_crisis_services"),
    "CrisisAggregator": ("services.aggregator", "CrisisAggregator"),
    "CrisisMonitor": ("services.crisis_monitor", "CrisisMonitor"),
    "NotificationService": ("services.notifications", "NotificationService"),
}


def __getattr__(name):
    if name not in _LAZY_EXPORTS:
        raise AttributeError(f"module 'services' has no attribute {name!r}")

    module_name, attr_name = _LAZY_EXPORTS[name]
    module = import_module(module_name)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value
