"""
The built-in bootstrap modules.

Every module in this package registers itself with ``ModuleRegistry`` when
imported; ``ModuleRegistry.builtin_descriptors`` imports them all.
"""
