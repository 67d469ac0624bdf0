"""
Transport Adapters Module

Bindings that move JSON-RPC payload text over a concrete transport:
- zeromq: REQ/REP sockets (inline flow)
"""
