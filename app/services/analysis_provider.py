"""
Analysis provider framework.

Defines the AI collaborator the worker calls for each job: an
OpenAI-compatible chat-completions provider and a deterministic mock used
for development and tests.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import settings


logger = logging.getLogger(__name__)

# USD per 1K tokens
COST_PER_1K_TOKENS = {"input": 0.005, "output": 0.015}

MAX_TOKENS_BY_TYPE = {
    "comprehensive": 4000,
    "risk-assessment": 3000,
    "clause-extraction": 2500,
    "basic": 2000,
}

_CONTRACT_BLOCK = """Contract Text:
{contract_text}

Contract Metadata:
- File Name: {file_name}
- Contract Type: {contract_type}
- Jurisdiction: {jurisdiction}
- Contract Value: {contract_value}
- Parties: {parties}
"""

_JSON_SHAPE = (
    "Respond with a JSON object with keys summary, clauses, risks, recommendations. "
    "clauses[]: id, title, description, category, importance, section, confidence. "
    "risks[]: id, title, description, severity (low|medium|high|critical), category, mitigation, confidence. "
    "recommendations[]: id, title, description, priority, category."
)

PROMPT_TEMPLATES = {
    "comprehensive": (
        "You are an expert contract analyst. Analyze the following contract and identify "
        "key clauses, potential risks, and actionable recommendations.\n\n"
        + _CONTRACT_BLOCK + "\n" + _JSON_SHAPE
    ),
    "risk-assessment": (
        "You are a risk assessment specialist. Analyze the following contract for potential risks "
        "and how to mitigate them.\n\n"
        + _CONTRACT_BLOCK + "\n" + _JSON_SHAPE
    ),
    "clause-extraction": (
        "You are a contract clause extraction specialist. Extract and categorize important clauses "
        "from the following contract.\n\n"
        + _CONTRACT_BLOCK + "\n" + _JSON_SHAPE
    ),
    "basic": (
        "Provide a basic overview of the following contract.\n\n"
        + _CONTRACT_BLOCK + "\n" + _JSON_SHAPE
    ),
}


@dataclass
class AnalysisRequest:
    """Input handed to a provider for one job."""

    contract_id: str
    analysis_type: str
    contract_text: str
    file_name: Optional[str] = None
    contract_metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AnalysisProviderResult:
    """Structured result returned by an analysis provider."""

    results: Dict[str, Any]
    summary: str
    confidence_score: float
    total_clauses: int
    total_risks: int
    total_recommendations: int
    high_risk_count: int
    critical_risk_count: int
    tokens_used: int = 0
    estimated_cost: float = 0.0
    provider: str = ""
    model: Optional[str] = None


class AnalysisProviderError(Exception):
    """Raised when a provider cannot produce an analysis."""

    def __init__(self, provider: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.provider = provider
        self.details = details or {}


def calculate_cost(input_tokens: int, output_tokens: int) -> float:
    return (input_tokens / 1000) * COST_PER_1K_TOKENS["input"] + (output_tokens / 1000) * COST_PER_1K_TOKENS["output"]


def calculate_confidence(raw: Dict[str, Any]) -> float:
    score = 0.8
    if len(raw.get("summary") or "") > 50:
        score += 0.1
    if raw.get("clauses"):
        score += 0.05
    if raw.get("risks"):
        score += 0.05
    return round(min(score, 1.0), 4)


def normalize_analysis(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Fill defaults on a raw model payload so every entry has id, title and category."""
    clauses = raw.get("clauses") if isinstance(raw.get("clauses"), list) else []
    risks = raw.get("risks") if isinstance(raw.get("risks"), list) else []
    recommendations = raw.get("recommendations") if isinstance(raw.get("recommendations"), list) else []

    return {
        "summary": raw.get("summary") or "No summary provided",
        "clauses": [
            {
                **c,
                "id": c.get("id") or f"clause_{i}",
                "title": c.get("title") or "Untitled Clause",
                "description": c.get("description") or "",
                "category": c.get("category") or "other",
                "importance": c.get("importance") or "medium",
                "confidence": c.get("confidence") or 0.8,
            }
            for i, c in enumerate(clauses)
            if isinstance(c, dict)
        ],
        "risks": [
            {
                **r,
                "id": r.get("id") or f"risk_{i}",
                "title": r.get("title") or "Untitled Risk",
                "description": r.get("description") or "",
                "severity": r.get("severity") or "medium",
                "category": r.get("category") or "operational",
                "confidence": r.get("confidence") or 0.8,
            }
            for i, r in enumerate(risks)
            if isinstance(r, dict)
        ],
        "recommendations": [
            {
                **r,
                "id": r.get("id") or f"rec_{i}",
                "title": r.get("title") or "Untitled Recommendation",
                "description": r.get("description") or "",
                "priority": r.get("priority") or "medium",
                "category": r.get("category") or "operational",
            }
            for i, r in enumerate(recommendations)
            if isinstance(r, dict)
        ],
    }


def build_provider_result(
    raw: Dict[str, Any],
    *,
    provider: str,
    model: Optional[str] = None,
    input_tokens: int = 0,
    output_tokens: int = 0,
) -> AnalysisProviderResult:
    normalized = normalize_analysis(raw)
    risks = normalized["risks"]
    return AnalysisProviderResult(
        results=normalized,
        summary=normalized["summary"],
        confidence_score=calculate_confidence(raw),
        total_clauses=len(normalized["clauses"]),
        total_risks=len(risks),
        total_recommendations=len(normalized["recommendations"]),
        high_risk_count=sum(1 for r in risks if r["severity"] == "high"),
        critical_risk_count=sum(1 for r in risks if r["severity"] == "critical"),
        tokens_used=input_tokens + output_tokens,
        estimated_cost=round(calculate_cost(input_tokens, output_tokens), 6),
        provider=provider,
        model=model,
    )


class AnalysisProvider:
    """Interface for analysis providers."""

    key: str

    async def analyze(self, request: AnalysisRequest) -> AnalysisProviderResult:  # pragma: no cover - interface
        raise NotImplementedError


class MockAnalysisProvider(AnalysisProvider):
    """Deterministic provider that returns a fixed analysis for any contract."""

    key = "mock"

    async def analyze(self, request: AnalysisRequest) -> AnalysisProviderResult:
        if not (request.contract_text or "").strip():
            raise AnalysisProviderError(self.key, "Contract text is required")

        raw = {
            "summary": (
                f"Mock {request.analysis_type} analysis of {request.file_name or 'contract'}: "
                "standard commercial terms with a capped liability clause and a 30 day termination notice."
            ),
            "clauses": [
                {
                    "id": "clause_payment",
                    "title": "Payment Terms",
                    "description": "Invoices are payable within 30 days.",
                    "category": "payment",
                    "importance": "high",
                    "confidence": 0.95,
                },
                {
                    "id": "clause_termination",
                    "title": "Termination",
                    "description": "Either party may terminate with 30 days written notice.",
                    "category": "termination",
                    "importance": "medium",
                    "confidence": 0.9,
                },
            ],
            "risks": [
                {
                    "id": "risk_liability",
                    "title": "Liability Cap",
                    "description": "Liability is capped at fees paid in the prior 12 months.",
                    "severity": "high",
                    "category": "legal",
                    "mitigation": "Negotiate a carve-out for data breaches.",
                    "confidence": 0.85,
                },
            ],
            "recommendations": [
                {
                    "id": "rec_notice",
                    "title": "Extend notice period",
                    "description": "Request 60 days notice for termination for convenience.",
                    "priority": "medium",
                    "category": "risk_mitigation",
                },
            ],
        }
        input_tokens = max(1, len(request.contract_text) // 4)
        return build_provider_result(raw, provider=self.key, model="mock", input_tokens=input_tokens, output_tokens=250)


class OpenAIAnalysisProvider(AnalysisProvider):
    """OpenAI-compatible chat-completions provider."""

    key = "openai"

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.model = model or settings.OPENAI_MODEL
        self.base_url = (base_url or settings.OPENAI_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.OPENAI_TIMEOUT_SECONDS
        self.transport = transport

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    def _build_prompt(self, request: AnalysisRequest) -> str:
        template = PROMPT_TEMPLATES.get(request.analysis_type)
        if not template:
            raise AnalysisProviderError(self.key, f"Unsupported analysis type: {request.analysis_type}")

        metadata = request.contract_metadata or {}
        max_tokens = MAX_TOKENS_BY_TYPE.get(request.analysis_type, 3000)
        contract_text = request.contract_text
        # ~4 characters per token; keep the contract within the response budget
        max_chars = max_tokens * 4 * 2
        if len(contract_text) > max_chars:
            contract_text = contract_text[:max_chars] + "\n\n[Text truncated]"

        parties = metadata.get("parties")
        return template.format(
            contract_text=contract_text,
            file_name=request.file_name or metadata.get("fileName") or "Unknown",
            contract_type=metadata.get("contractType") or "Unknown",
            jurisdiction=metadata.get("jurisdiction") or "Unknown",
            contract_value=metadata.get("contractValue") or "Unknown",
            parties=", ".join(parties) if isinstance(parties, list) and parties else "Unknown",
        )

    def _build_request_body(self, request: AnalysisRequest) -> Dict[str, Any]:
        return {
            "model": self.model,
            "temperature": 0.1,
            "max_tokens": MAX_TOKENS_BY_TYPE.get(request.analysis_type, 3000),
            "messages": [
                {
                    "role": "system",
                    "content": "You are a contract analysis assistant. Return ONLY JSON.",
                },
                {
                    "role": "user",
                    "content": self._build_prompt(request),
                },
            ],
            "response_format": {"type": "json_object"},
        }

    def _parse_response_payload(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        choices = payload.get("choices") or []
        if not choices:
            raise AnalysisProviderError(self.key, "No response from AI service")
        content = (choices[0].get("message") or {}).get("content")
        if not isinstance(content, str) or not content.strip():
            raise AnalysisProviderError(self.key, "Empty response from AI service")
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as exc:
            raise AnalysisProviderError(self.key, f"Failed to parse AI response: {exc}")
        if not isinstance(parsed, dict):
            raise AnalysisProviderError(self.key, "AI response is not a JSON object")
        return parsed

    async def analyze(self, request: AnalysisRequest) -> AnalysisProviderResult:
        if not self.api_key:
            raise AnalysisProviderError(self.key, "Missing required environment variables", {"missing": ["OPENAI_API_KEY"]})
        if not (request.contract_text or "").strip():
            raise AnalysisProviderError(self.key, "Contract text is required")

        body = self._build_request_body(request)
        headers = {"Authorization": f"Bearer {self.api_key}"}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                resp = await client.post(self.endpoint, json=body, headers=headers)
            except httpx.HTTPError as exc:
                raise AnalysisProviderError(self.key, f"AI service request failed: {exc}")

        if resp.status_code >= 400:
            raise AnalysisProviderError(
                self.key,
                f"AI service returned HTTP {resp.status_code}",
                {"status_code": resp.status_code, "body": resp.text[:500]},
            )

        try:
            payload = resp.json()
        except json.JSONDecodeError as exc:
            raise AnalysisProviderError(
                self.key,
                f"AI service returned invalid JSON: {exc}",
                {"status_code": resp.status_code, "body": resp.text[:500]},
            )
        if not isinstance(payload, dict):
            raise AnalysisProviderError(self.key, "AI service response is not a JSON object")
        parsed = self._parse_response_payload(payload)
        usage = payload.get("usage") or {}
        logger.info(f"OpenAI analysis for contract {request.contract_id} used {usage.get('total_tokens', 0)} tokens")
        return build_provider_result(
            parsed,
            provider=self.key,
            model=payload.get("model") or self.model,
            input_tokens=int(usage.get("prompt_tokens") or 0),
            output_tokens=int(usage.get("completion_tokens") or 0),
        )


_PROVIDER_REGISTRY: Dict[str, type] = {
    MockAnalysisProvider.key: MockAnalysisProvider,
    OpenAIAnalysisProvider.key: OpenAIAnalysisProvider,
}


def get_analysis_provider(provider_key: Optional[str] = None) -> AnalysisProvider:
    """Build the provider configured by ANALYSIS_PROVIDER (or the given key)."""
    key = provider_key or settings.ANALYSIS_PROVIDER
    provider_cls = _PROVIDER_REGISTRY.get(key)
    if provider_cls is None:
        raise AnalysisProviderError(key, f"Unknown analysis provider: {key}", {"available": list_analysis_providers()})
    return provider_cls()


def list_analysis_providers() -> List[str]:
    return sorted(_PROVIDER_REGISTRY)
