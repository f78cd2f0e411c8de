"""EC2 secondary address synchronisation for udhcpc-managed interfaces.

EC2 lets an ENI carry more addresses than the one handed out by DHCP.  The
extra IPv4 and IPv6 addresses only exist in the instance metadata service, so
something on the instance has to copy them onto the interface and keep them in
step as they are assigned or released.  This package does that:

* reading the authoritative address lists for an interface from IMDSv2;
* diffing them against what the kernel currently has configured and applying
  only the minimal set of address (and policy rule) changes; and
* provisioning a dedicated routing table for non-primary interfaces so traffic
  sourced from their addresses leaves through the right ENI.

The reconciler talks to the kernel through :class:`ec2_netsync.backend.NetworkBackend`
so unit tests can run without netlink access or a metadata service.
"""

from .reconciler import InterfaceReconciler  # noqa: F401

__all__ = ["InterfaceReconciler"]
