"""kubehatch.

Provision, inspect and tear down virtual Kubernetes clusters on a host cluster.
"""

__version__ = "0.1.0"
__author__ = "Platform Engineering Team"
__license__ = "Apache-2.0"
