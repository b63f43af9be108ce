"""Test fakes for flexnode."""

from .azure import (
    CLUSTER_ID,
    CLUSTER_NAME,
    CLUSTER_RG,
    PRINCIPAL_ID,
    SUBSCRIPTION_ID,
    VM_ID,
    FakeAzureClients,
    FakeMetadataClient,
    make_cluster,
    make_http_error,
    make_vm,
)

__all__ = [
    "CLUSTER_ID",
    "CLUSTER_NAME",
    "CLUSTER_RG",
    "PRINCIPAL_ID",
    "SUBSCRIPTION_ID",
    "VM_ID",
    "FakeAzureClients",
    "FakeMetadataClient",
    "make_cluster",
    "make_http_error",
    "make_vm",
]
