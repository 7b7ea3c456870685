"""Build the Kubernetes and AWS clients the controller runs with."""

import logging
from typing import Optional

import boto3
from kubernetes import client, config

from .models import ControllerConfig

logger = logging.getLogger(__name__)


def load_kube_config(kubeconfig: Optional[str] = None) -> None:
    """
    Load cluster credentials.

    Uses the given kubeconfig file when set, otherwise the service account
    mounted into the pod.
    """
    try:
        if kubeconfig:
            config.load_kube_config(config_file=kubeconfig)
            logger.info(f"Loaded Kubernetes credentials from {kubeconfig}")
        else:
            config.load_incluster_config()
            logger.info("Loaded in-cluster Kubernetes credentials")
    except Exception as e:
        logger.error(f"Failed to load Kubernetes client config: {e}")
        raise RuntimeError(f"Failed to load Kubernetes client config: {e}")


def create_core_api(settings: ControllerConfig) -> client.CoreV1Api:
    """Create the CoreV1 API client for the configured cluster."""
    load_kube_config(settings.kubeconfig)
    return client.CoreV1Api()


def create_aws_session(settings: ControllerConfig) -> boto3.session.Session:
    """Create the boto3 session for the configured region and profile."""
    try:
        session = boto3.session.Session(
            region_name=settings.region,
            profile_name=settings.profile_name,
        )
    except Exception as e:
        logger.error(f"Failed to create an AWS API client session: {e}")
        raise RuntimeError(f"Failed to create an AWS API client session: {e}")

    if not session.region_name:
        logger.warning("No AWS region configured; EC2 calls will fail until one is set")
    return session
