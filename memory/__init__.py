from memory.store import ReadOnlyStore, Store, StoreTypeError, Var, fresh_var

__all__ = [
    "ReadOnlyStore",
    "Store",
    "StoreTypeError",
    "Var",
    "fresh_var",
]
