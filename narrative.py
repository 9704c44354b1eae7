"""
Render pipeline stage events into the user-facing narrative
"""
from typing import Callable, Dict, List, Sequence

from models import (
    CapEvent,
    CriticalErrorEvent,
    ExtractionEvent,
    FanoutEvent,
    FanoutSource,
    HaltEvent,
    HaltReason,
    Operation,
    PoolingEvent,
    SynthesisEvent,
    ValidationEvent,
    ValidationMode,
)

FANOUT_LABELS = {
    FanoutSource.CONTACTS: "Contact discovery",
    FanoutSource.SCRAPER: "Website scraping",
}


def _extraction(event: ExtractionEvent) -> List[str]:
    if event.failed:
        return [f"The language model could not process the request, so no {event.target} were identified."]

    sentences = []
    if event.operation == Operation.FIND_BY_CRITERIA:
        sentences.append(f"Identified {event.found} company(ies) relevant to the search criteria.")
        if event.reasoning:
            sentences.append(event.reasoning.strip())
        if event.suggested_addresses:
            sentences.append(f"The language model suggested {event.suggested_addresses} generic address(es).")
    elif event.operation == Operation.EXTRACT_FROM_TEXT:
        sentence = f"Extracted {event.found} potential address(es) from the text"
        if event.character_count is not None:
            sentence += f" ({event.character_count} characters)"
        sentences.append(sentence + ".")
    elif event.operation == Operation.GENERATE_FROM_NAMES:
        sentences.append(f"Generated {event.found} address guess(es) from names in the text.")
        if event.summary:
            sentences.append(event.summary.strip())
    elif event.operation == Operation.GENERATE_FROM_DOMAINS:
        sentences.append(f"Extracted {event.found} unique domain(s) from the text.")
    else:
        sentences.append(f"Found {event.found} address(es) associated with the company.")
        if event.reasoning:
            sentences.append(event.reasoning.strip())
    return sentences


def _synthesis(event: SynthesisEvent) -> List[str]:
    return [f"Suggested {event.generated} generic role address(es) for {event.domains} domain(s)."]


def _fanout(event: FanoutEvent) -> List[str]:
    label = FANOUT_LABELS[event.source]
    sentences = [f"{label} found {event.addresses_found} potential address(es) for {event.domains} domain(s)."]
    if event.failed_lookups:
        if event.config_problem:
            sentences.append(
                f"{event.failed_lookups} lookup(s) failed because of a configuration problem with the "
                f"{label.lower()} service (missing or invalid credential); check the API key settings."
            )
        else:
            sentences.append(
                f"{event.failed_lookups} lookup(s) failed with service errors; check the server logs for details."
            )
    return sentences


def _pooling(event: PoolingEvent) -> List[str]:
    return [f"Combined {event.gathered} candidate(s) into {event.unique} unique address(es)."]


def _validation(event: ValidationEvent) -> List[str]:
    if event.mode == ValidationMode.NONE:
        return ["No deliverability verification was performed; candidates are returned as found."]

    if event.mode == ValidationMode.BASIC:
        sentences = [f"Basic format check accepted {event.valid} of {event.checked} address(es)."]
    else:
        sentences = [f"Deliverability verification confirmed {event.valid} of {event.checked} address(es) as valid."]

    if event.config_errors:
        sentences.append(
            f"{event.config_errors} address(es) could not be verified because the deliverability service "
            f"is not configured (missing or invalid credential). This is a configuration problem, "
            f"not an absence of matches."
        )
    if event.service_errors:
        sentences.append(
            f"The deliverability service rejected {event.service_errors} verification request(s) "
            f"(authentication failure or rate limit)."
        )
    if event.invocation_errors:
        sentences.append(
            f"{event.invocation_errors} verification call(s) failed to reach the deliverability service."
        )
    return sentences


def _cap(event: CapEvent) -> List[str]:
    if event.truncated:
        return [f"Results were truncated to the first {event.cap} of {event.available} address(es)."]
    if not event.returned:
        return ["No addresses remained to return."]
    return [f"Returning all {event.returned} address(es)."]


def _halt(event: HaltEvent) -> List[str]:
    if event.reason == HaltReason.EMPTY_INPUT:
        return ["No input was provided, so nothing was searched."]
    if event.reason == HaltReason.EXTRACTOR_FAILED:
        return ["No results could be produced because the language model step failed."]
    if event.reason == HaltReason.NOTHING_EXTRACTED:
        return [f"No {event.target or 'results'} were found in the input."]
    return ["No candidate addresses were found to process."]


def _critical(event: CriticalErrorEvent) -> List[str]:
    return [
        f"A critical error occurred while processing the request ({event.message}). "
        f"Please check the server logs or try again later."
    ]


RENDERERS: Dict[str, Callable] = {
    "extraction": _extraction,
    "synthesis": _synthesis,
    "fanout": _fanout,
    "pooling": _pooling,
    "validation": _validation,
    "cap": _cap,
    "halt": _halt,
    "critical": _critical,
}


def render_narrative(events: Sequence) -> str:
    """Join the sentences of every event, in order, into one prose string"""
    sentences: List[str] = []
    for event in events:
        sentences.extend(s for s in RENDERERS[event.kind](event) if s)
    return " ".join(sentences)
