"""
Dual-Native identity and conditional-access engine

The engine is split into small components, which are usually wired
together by the ``DualNativeSystem`` in the ``system`` module:

 * ``canonical``: deterministic normal form of nested content values
 * ``identity``: content identities (CIDs) and response digests
 * ``validators``: evaluation of ``If-None-Match`` and ``If-Match`` headers
 * ``catalog``: the thread-safe registry of all known resources
 * ``conformance``: capability flags to conformance levels
 * ``links``, ``equivalence`` and ``blocks``: helpers around the two representations

No component performs I/O by itself. Storage, resource fetching
and event notification are delegated to injected collaborators.
"""
