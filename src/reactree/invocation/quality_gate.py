"""QualityGate Runner: invoke an external validation check and normalize its verdict.

A gate that times out or errors is a failed gate. The runner never raises and
never returns an ambiguous verdict.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any, Protocol

from pydantic import ValidationError

from reactree.errors import QualityGateError
from reactree.models import GateCheck, QualityGateVerdict

logger = logging.getLogger(__name__)


class QualityGate(Protocol):
    async def check(
        self,
        gate_name: str,
        context: Mapping[str, str],
        timeout_s: float,
    ) -> GateCheck | Mapping[str, Any]: ...


class QualityGateRunner:
    def __init__(self, gate: QualityGate, *, timeout_s: float = 10.0) -> None:
        self.gate = gate
        self.timeout_s = timeout_s

    async def run(self, gate_name: str, phase_context: Mapping[str, str]) -> QualityGateVerdict:
        try:
            check = await self._check_once(gate_name, phase_context)
        except QualityGateError as exc:
            logger.warning(
                "quality_gate event=error gate=%s timed_out=%s reason=%s",
                gate_name,
                exc.timed_out,
                exc.reason,
            )
            return QualityGateVerdict(gate_name=gate_name, passed=False, messages=[str(exc)])

        verdict = QualityGateVerdict(
            gate_name=gate_name,
            passed=check.passed,
            messages=list(check.messages),
        )
        logger.info(
            "quality_gate event=checked gate=%s passed=%s messages=%d",
            gate_name,
            verdict.passed,
            len(verdict.messages),
        )
        return verdict

    async def _check_once(self, gate_name: str, phase_context: Mapping[str, str]) -> GateCheck:
        try:
            raw = await asyncio.wait_for(
                self.gate.check(gate_name, dict(phase_context), self.timeout_s),
                timeout=self.timeout_s,
            )
        except TimeoutError as exc:
            raise QualityGateError(gate_name, f"{self.timeout_s:.2f}s", timed_out=True) from exc
        except Exception as exc:  # noqa: BLE001
            raise QualityGateError(gate_name, str(exc) or type(exc).__name__) from exc

        if isinstance(raw, GateCheck):
            return raw
        try:
            return GateCheck.model_validate(raw)
        except ValidationError as exc:
            raise QualityGateError(
                gate_name, f"malformed gate result: {exc.errors()[0]['msg']}"
            ) from exc
