from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

from zatca_relay.document_builder import CanonicalDocument
from zatca_relay.logger import log_invoice_event
from zatca_relay.signing import InvoiceSigner
from zatca_relay.state_machine import BUILT, CLEARED, enter_stage, finish_stage, transition_state
from zatca_relay.zatca_client import CLEARANCE, COMPLIANCE, REPORTING, STAGES, StageResult, local_qr_payload

logger = logging.getLogger(__name__)

STAGE_STATUS_WORDS: dict[str, tuple[str, str]] = {
    COMPLIANCE: ("approved", "rejected"),
    REPORTING: ("submitted", "failed"),
    CLEARANCE: ("cleared", "rejected"),
}

STAGE_ERROR_PREFIXES: dict[str, str] = {
    COMPLIANCE: "Compliance check failed",
    REPORTING: "Reporting failed",
    CLEARANCE: "Clearance failed",
}


class StageSubmitter(Protocol):
    def submit(self, stage: str, document: CanonicalDocument, signed_xml: str) -> StageResult:
        """Send one signed document to one remote stage."""


@dataclass(frozen=True)
class SubmissionResult:
    state: str
    success: bool
    uuid: str | None = None
    qr_code: str | None = None
    error: str | None = None
    failed_stage: str | None = None
    stage_statuses: dict[str, str] = field(default_factory=dict)
    bypassed: bool = False


class SubmissionPipeline:
    """Drive a built document through compliance, reporting and clearance.

    Stages run strictly in order. The first stage that does not succeed ends
    the run and later stages are never attempted. There is no retry.
    """

    def __init__(
        self,
        client: StageSubmitter,
        signer: InvoiceSigner,
        *,
        testing_mode: bool = False,
    ) -> None:
        self._client = client
        self._signer = signer
        self._testing_mode = testing_mode

    @property
    def testing_mode(self) -> bool:
        return self._testing_mode

    def run(self, document: CanonicalDocument, *, request_id: str | None = None) -> SubmissionResult:
        if self._testing_mode:
            return self._bypass(document, request_id=request_id)

        state = BUILT
        statuses: dict[str, str] = {}
        results: dict[str, StageResult] = {}
        for stage in STAGES:
            state = enter_stage(state, stage)
            signed_xml = self._signer.sign(document.xml)
            result = self._client.submit(stage, document, signed_xml)
            results[stage] = result
            state = finish_stage(state, stage, passed=result.success)
            ok_word, fail_word = STAGE_STATUS_WORDS[stage]

            if not result.success:
                statuses[f"{stage}_status"] = fail_word
                error = f"{STAGE_ERROR_PREFIXES[stage]}: {result.error}"
                log_invoice_event(
                    logger,
                    logging.WARNING,
                    error,
                    request_id=request_id,
                    invoice_number=document.invoice_number,
                    zatca_uuid=document.uuid,
                    stage=stage,
                    state=state,
                    outcome="rejected",
                )
                return SubmissionResult(
                    state=state,
                    success=False,
                    error=error,
                    failed_stage=stage,
                    stage_statuses=statuses,
                )

            statuses[f"{stage}_status"] = ok_word
            log_invoice_event(
                logger,
                logging.INFO,
                f"ZATCA {stage} stage succeeded",
                request_id=request_id,
                invoice_number=document.invoice_number,
                zatca_uuid=document.uuid,
                stage=stage,
                state=state,
                outcome="success",
            )

        cleared = results[CLEARANCE]
        return SubmissionResult(
            state=state,
            success=True,
            uuid=cleared.uuid,
            qr_code=cleared.qr_code,
            stage_statuses=statuses,
        )

    def _bypass(self, document: CanonicalDocument, *, request_id: str | None) -> SubmissionResult:
        state = transition_state(BUILT, CLEARED)
        log_invoice_event(
            logger,
            logging.WARNING,
            "ZATCA testing mode active; remote submission bypassed",
            request_id=request_id,
            invoice_number=document.invoice_number,
            zatca_uuid=document.uuid,
            state=state,
            outcome="bypassed",
        )
        return SubmissionResult(
            state=state,
            success=True,
            uuid=document.uuid,
            qr_code=local_qr_payload(document),
            stage_statuses={
                f"{stage}_status": STAGE_STATUS_WORDS[stage][0] for stage in STAGES
            },
            bypassed=True,
        )
