"""DNS-01 solver providers shipped with acmeissue.

Third-party providers are plugged in through the registry with an
``ext:package.module.Class`` name.
"""
