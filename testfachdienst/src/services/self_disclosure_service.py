"""
Self disclosure ("Selbstauskunft") log record.

Builds an OTLP log record that announces the configured identity attributes
of this service instance.
"""

import os
import time
from typing import Dict, Optional

import structlog
from opentelemetry._logs import SeverityNumber
from opentelemetry.sdk._logs import LogData, LogRecord
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.util.instrumentation import InstrumentationScope

logger = structlog.get_logger(__name__)

SELF_DISCLOSURE_BODY = "Selbstauskunft"


class SelfDisclosureService:
    """Creates self disclosure log records from configured attributes."""

    def __init__(
        self,
        resource_attributes: Dict[str, str],
        service_name: str = "testfachdienst",
        service_version: str = "0.0.0",
    ):
        self.resource_attributes = dict(resource_attributes)
        self.resource = Resource.create(
            {"service.name": service_name, "service.version": service_version}
        )
        self.scope = InstrumentationScope(__name__, service_version)

    def _pod_name(self) -> Optional[str]:
        # Kubernetes sets HOSTNAME to the pod name
        pod_name = os.environ.get("HOSTNAME")
        if pod_name and pod_name.strip():
            return pod_name
        return None

    def build_attributes(self) -> Dict[str, str]:
        attributes = dict(self.resource_attributes)
        pod_name = self._pod_name()
        if pod_name:
            attributes["pod_name"] = pod_name
        return attributes

    def generate_self_disclosure_record(self) -> LogData:
        """
        Build an OTLP log record carrying the self disclosure.

        Returns:
            LogData with body "Selbstauskunft", the current timestamp and the
            configured attributes plus ``pod_name`` when available
        """
        now = time.time_ns()
        record = LogRecord(
            timestamp=now,
            observed_timestamp=now,
            severity_text="INFO",
            severity_number=SeverityNumber.INFO,
            body=SELF_DISCLOSURE_BODY,
            resource=self.resource,
            attributes=self.build_attributes(),
        )
        logger.debug("self_disclosure_record_generated", attributes=sorted(self.resource_attributes))
        return LogData(log_record=record, instrumentation_scope=self.scope)
