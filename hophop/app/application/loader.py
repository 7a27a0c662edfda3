"""Resolve a consumer class from a "package.module:ClassName" path."""
from __future__ import annotations

import importlib

from hophop.app.application.consumer import Consumer


def load_consumer(path: str) -> Consumer:
    module_name, sep, class_name = path.strip().partition(":")
    if not sep or not module_name or not class_name:
        raise ValueError(f"consumer path must look like 'package.module:ClassName', got {path!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ValueError(f"cannot import consumer module {module_name!r}: {exc}") from exc

    klass = getattr(module, class_name, None)
    if klass is None:
        raise ValueError(f"module {module_name!r} has no attribute {class_name!r}")
    if not isinstance(klass, type) or not issubclass(klass, Consumer):
        raise TypeError(f"{path!r} is not a Consumer subclass")
    return klass()
