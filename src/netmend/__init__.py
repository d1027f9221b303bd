"""netmend - idempotent reconciler for KVM host networking."""

__version__ = "0.1.0"
