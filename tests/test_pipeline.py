import pytest

from fakes import FakeContactFinder, FakeExtractor, FakeScraper, FakeValidator
from models import (
    CapEvent,
    CompanyAddressExtraction,
    CompanyIdentification,
    CompanyLead,
    CompanyLookupRequest,
    CriteriaSearchRequest,
    CriticalErrorEvent,
    DomainExtraction,
    DomainLookupRequest,
    FanoutEvent,
    FanoutSource,
    HaltEvent,
    HaltReason,
    LookupErrorKind,
    NameGuesses,
    NameGuessRequest,
    Operation,
    RawAddressExtraction,
    ScrapeResult,
    TextExtractionRequest,
    ValidationEvent,
    ValidationMode,
    ValidationStatus,
)
from neverbounce_client import NeverBounceValidator
from pipeline import default_operations


def _companies(*domains):
    return CompanyIdentification(
        companies=[CompanyLead(name=f"Company {i}", domain=domain) for i, domain in enumerate(domains)],
        initial_reasoning="Chosen for relevance.",
    )


def _events(result, kind):
    return [event for event in result.events if event.kind == kind]


def _mailboxes(domain, count):
    return [f"person{i}@{domain}" for i in range(count)]


@pytest.mark.asyncio
async def test_find_by_criteria_keeps_only_valid_contacts(make_pipeline):
    extractor = FakeExtractor(identify_companies=CompanyIdentification(
        companies=[CompanyLead(name="Acme Plumbing", domain="acmeplumbing.com")],
        initial_reasoning="Acme is a Denver plumbing contractor.",
    ))
    finder = FakeContactFinder({"acmeplumbing.com": ["j.smith@acmeplumbing.com", "bad-address"]})
    validator = FakeValidator(
        statuses={"j.smith@acmeplumbing.com": ValidationStatus.VALID},
        default=ValidationStatus.INVALID,
    )
    pipeline = make_pipeline(extractor, finder, validator)

    result = await pipeline.find_by_criteria(CriteriaSearchRequest(criteria="plumbers in Denver"))

    assert result.addresses == ["j.smith@acmeplumbing.com"]
    assert finder.calls == [("acmeplumbing.com", 5)]
    assert "Identified 1 company(ies)" in result.narrative
    assert "found 2 potential address(es)" in result.narrative
    assert "confirmed 1 of 1 address(es) as valid" in result.narrative
    assert _events(result, "fanout")[0].addresses_found == 2


@pytest.mark.asyncio
async def test_missing_validator_credential_is_reported_as_configuration_problem(make_pipeline):
    extractor = FakeExtractor(identify_companies=_companies("acmeplumbing.com"))
    finder = FakeContactFinder({"acmeplumbing.com": ["j.smith@acmeplumbing.com", "office@acmeplumbing.com"]})
    pipeline = make_pipeline(extractor, finder, NeverBounceValidator(api_key=None))

    result = await pipeline.find_by_criteria(CriteriaSearchRequest(criteria="plumbers in Denver"))

    assert result.addresses == []
    assert "configuration problem" in result.narrative
    assert "not an absence of matches" in result.narrative
    validation = _events(result, "validation")[0]
    assert validation.config_errors == 2
    assert validation.valid == 0


@pytest.mark.asyncio
async def test_text_without_addresses_short_circuits(make_pipeline):
    extractor = FakeExtractor(extract_addresses=RawAddressExtraction(extracted_emails=[]))
    validator = FakeValidator()
    pipeline = make_pipeline(extractor, validator=validator)

    result = await pipeline.extract_from_text(TextExtractionRequest(text="no addresses in here at all"))

    assert result.addresses == []
    assert validator.calls == []
    assert result.events[-1] == HaltEvent(reason=HaltReason.NOTHING_EXTRACTED, target="addresses")
    assert "No addresses were found in the input." in result.narrative


@pytest.mark.asyncio
async def test_under_cap_returns_everything_without_truncation_note(make_pipeline):
    domains = [f"firm{i}.com" for i in range(5)]
    finder = FakeContactFinder({domain: _mailboxes(domain, 5) for domain in domains})
    pipeline = make_pipeline(FakeExtractor(identify_companies=_companies(*domains)), finder)

    result = await pipeline.find_by_criteria(CriteriaSearchRequest(criteria="accountants"))

    assert len(result.addresses) == 25
    assert "truncat" not in result.narrative.lower()
    assert "Returning all 25 address(es)." in result.narrative


@pytest.mark.asyncio
async def test_over_cap_truncates_to_prefix_in_domain_order(make_pipeline):
    domains = [f"firm{i}.com" for i in range(9)]
    finder = FakeContactFinder({domain: _mailboxes(domain, 5) for domain in domains})
    pipeline = make_pipeline(FakeExtractor(identify_companies=_companies(*domains)), finder)

    result = await pipeline.find_by_criteria(CriteriaSearchRequest(criteria="accountants"))

    expected = [address for domain in domains for address in _mailboxes(domain, 5)][:30]
    assert result.addresses == expected
    assert "Results were truncated to the first 30 of 45 address(es)." in result.narrative
    assert _events(result, "cap")[0] == CapEvent(cap=30, available=45, returned=30, truncated=True)


@pytest.mark.asyncio
async def test_uncapped_operation_returns_every_candidate(make_pipeline):
    addresses = [f"user{i}@example.com" for i in range(45)]
    extractor = FakeExtractor(extract_addresses=RawAddressExtraction(extracted_emails=addresses))
    pipeline = make_pipeline(extractor)

    result = await pipeline.extract_from_text(TextExtractionRequest(text="a long mailing list"))

    assert result.addresses == addresses
    assert _events(result, "cap") == []


@pytest.mark.asyncio
async def test_duplicates_collapse_to_first_seen_casing(make_pipeline):
    extractor = FakeExtractor(identify_companies=CompanyIdentification(
        companies=[CompanyLead(name="Acme", domain="acme.com", suggested_emails=["Info@Acme.com"])],
    ))
    finder = FakeContactFinder({"acme.com": ["info@acme.com", "INFO@ACME.COM", "sales@acme.com"]})
    pipeline = make_pipeline(extractor, finder)

    result = await pipeline.find_by_criteria(CriteriaSearchRequest(criteria="anvils"))

    assert result.addresses == ["Info@Acme.com", "sales@acme.com"]
    pooling = _events(result, "pooling")[0]
    assert (pooling.gathered, pooling.unique) == (4, 2)


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_critical_error_result(make_pipeline):
    pipeline = make_pipeline(FakeExtractor(identify_companies=RuntimeError("model exploded")))

    result = await pipeline.find_by_criteria(CriteriaSearchRequest(criteria="plumbers"))

    assert result.addresses == []
    assert "critical error" in result.narrative
    assert "model exploded" in result.narrative
    assert isinstance(result.events[-1], CriticalErrorEvent)


@pytest.mark.asyncio
async def test_validation_runs_in_sequential_chunks_of_ten(make_pipeline):
    addresses = [f"user{i}@example.com" for i in range(25)]
    validator = FakeValidator()
    extractor = FakeExtractor(extract_addresses=RawAddressExtraction(extracted_emails=addresses))
    pipeline = make_pipeline(extractor, validator=validator)

    result = await pipeline.extract_from_text(TextExtractionRequest(text="list"))

    assert validator.max_in_flight == 10
    assert validator.calls == addresses
    assert result.addresses == addresses


@pytest.mark.asyncio
async def test_exception_inside_chunk_does_not_abort_it(make_pipeline):
    addresses = ["a@example.com", "b@example.com", "c@example.com"]
    validator = FakeValidator(raise_for=["b@example.com"])
    extractor = FakeExtractor(extract_addresses=RawAddressExtraction(extracted_emails=addresses))
    pipeline = make_pipeline(extractor, validator=validator)

    result = await pipeline.extract_from_text(TextExtractionRequest(text="list"))

    assert result.addresses == ["a@example.com", "c@example.com"]
    assert _events(result, "validation")[0].invocation_errors == 1
    assert "1 verification call(s) failed to reach the deliverability service." in result.narrative


@pytest.mark.asyncio
async def test_validation_error_kinds_are_tallied_separately(make_pipeline):
    addresses = ["ok@example.com", "svc@example.com", "net@example.com", "gone@example.com", "maybe@example.com"]
    validator = FakeValidator(statuses={
        "ok@example.com": ValidationStatus.VALID,
        "svc@example.com": ValidationStatus.ERROR_SERVICE,
        "net@example.com": ValidationStatus.ERROR_INVOCATION,
        "gone@example.com": ValidationStatus.INVALID,
        "maybe@example.com": ValidationStatus.CATCHALL,
    })
    extractor = FakeExtractor(extract_addresses=RawAddressExtraction(extracted_emails=addresses))
    pipeline = make_pipeline(extractor, validator=validator)

    result = await pipeline.extract_from_text(TextExtractionRequest(text="list"))

    assert result.addresses == ["ok@example.com"]
    validation = _events(result, "validation")[0]
    assert validation == ValidationEvent(
        mode=ValidationMode.FULL,
        checked=5,
        valid=1,
        rejected=2,
        service_errors=1,
        invocation_errors=1,
    )
    assert "rejected 1 verification request(s)" in result.narrative


@pytest.mark.asyncio
async def test_partial_fanout_failure_keeps_successful_domains(make_pipeline):
    finder = FakeContactFinder(
        {"good.com": ["a@good.com"]},
        errors={"flaky.com": LookupErrorKind.SERVICE},
    )
    extractor = FakeExtractor(identify_companies=_companies("flaky.com", "good.com"))
    pipeline = make_pipeline(extractor, finder)

    result = await pipeline.find_by_criteria(CriteriaSearchRequest(criteria="widgets"))

    assert result.addresses == ["a@good.com"]
    assert _events(result, "fanout")[0] == FanoutEvent(
        source=FanoutSource.CONTACTS, domains=2, addresses_found=1, failed_lookups=1, config_problem=False,
    )
    assert "1 lookup(s) failed with service errors" in result.narrative


@pytest.mark.asyncio
async def test_fanout_credential_problem_is_named(make_pipeline):
    finder = FakeContactFinder(errors={"acme.com": LookupErrorKind.CONFIG})
    pipeline = make_pipeline(FakeExtractor(identify_companies=_companies("acme.com")), finder)

    result = await pipeline.find_by_criteria(CriteriaSearchRequest(criteria="widgets"))

    assert result.addresses == []
    assert _events(result, "fanout")[0].config_problem is True
    assert "configuration problem" in result.narrative
    assert result.events[-1] == HaltEvent(reason=HaltReason.NO_CANDIDATES)


@pytest.mark.asyncio
async def test_company_domains_are_normalised_before_fanout(make_pipeline):
    finder = FakeContactFinder()
    extractor = FakeExtractor(identify_companies=_companies("https://www.Acme.com/about", "acme.com", "not a domain"))
    pipeline = make_pipeline(extractor, finder)

    await pipeline.find_by_criteria(CriteriaSearchRequest(criteria="anvils"))

    assert finder.calls == [("acme.com", 5)]


@pytest.mark.asyncio
async def test_criteria_suggestion_setting_is_passed_to_extractor(make_pipeline):
    extractor = FakeExtractor(identify_companies=_companies())
    pipeline = make_pipeline(extractor, criteria_suggest_emails=False)

    await pipeline.find_by_criteria(CriteriaSearchRequest(criteria="anvils"))

    assert extractor.calls == [("identify_companies", "anvils", False)]


@pytest.mark.asyncio
async def test_domains_operation_synthesises_generic_addresses(make_pipeline):
    extractor = FakeExtractor(extract_domains=DomainExtraction(domains=["https://www.Acme.com/about", "acme.com", "beta.io"]))
    finder = FakeContactFinder({"acme.com": ["jane@acme.com", "info@acme.com"]})
    validator = FakeValidator()
    pipeline = make_pipeline(extractor, finder, validator)

    result = await pipeline.generate_from_domains(DomainLookupRequest(domains_text="Acme and Beta websites"))

    assert result.addresses == [
        "contact@acme.com", "info@acme.com", "support@acme.com", "sales@acme.com",
        "contact@beta.io", "info@beta.io", "support@beta.io", "sales@beta.io",
        "jane@acme.com",
    ]
    assert validator.calls == []
    assert "Extracted 2 unique domain(s) from the text." in result.narrative
    assert "Suggested 8 generic role address(es) for 2 domain(s)." in result.narrative
    assert "No deliverability verification was performed" in result.narrative


@pytest.mark.asyncio
async def test_domains_operation_can_use_scraper(make_pipeline):
    extractor = FakeExtractor(extract_domains=DomainExtraction(domains=["acme.com"]))
    finder = FakeContactFinder({"acme.com": ["never@acme.com"]})
    scraper = FakeScraper(ScrapeResult(emails=["press@acme.com"]))
    pipeline = make_pipeline(extractor, finder, scraper=scraper, domains_fanout_source="scraper", generic_prefixes=[])

    result = await pipeline.generate_from_domains(DomainLookupRequest(domains_text="acme.com"))

    assert result.addresses == ["press@acme.com"]
    assert scraper.calls == [["acme.com"]]
    assert finder.calls == []
    assert "Website scraping found 1 potential address(es) for 1 domain(s)." in result.narrative


@pytest.mark.asyncio
async def test_scraper_configuration_problem_is_named(make_pipeline):
    extractor = FakeExtractor(extract_domains=DomainExtraction(domains=["acme.com"]))
    scraper = FakeScraper(ScrapeResult(error="Scraping service URL is not configured.", error_kind=LookupErrorKind.CONFIG))
    pipeline = make_pipeline(extractor, scraper=scraper, domains_fanout_source="scraper")

    result = await pipeline.generate_from_domains(DomainLookupRequest(domains_text="acme.com"))

    assert _events(result, "fanout")[0].config_problem is True
    assert "configuration problem" in result.narrative
    # generic addresses still come through
    assert "contact@acme.com" in result.addresses


@pytest.mark.asyncio
async def test_names_operation_skips_validation(make_pipeline):
    extractor = FakeExtractor(guess_addresses_from_names=NameGuesses(
        guessed_emails=["john.doe@gmail.com", "JOHN.DOE@gmail.com", "jdoe@gmail.com"],
        generation_summary="Found one name: John Doe.",
    ))
    validator = FakeValidator(default=ValidationStatus.INVALID)
    pipeline = make_pipeline(extractor, validator=validator)

    result = await pipeline.generate_from_names(NameGuessRequest(names_text="John Doe runs the team"))

    assert result.addresses == ["john.doe@gmail.com", "jdoe@gmail.com"]
    assert validator.calls == []
    assert "Found one name: John Doe." in result.narrative


@pytest.mark.asyncio
async def test_company_operation_relays_reasoning(make_pipeline):
    extractor = FakeExtractor(extract_company_addresses=CompanyAddressExtraction(
        email_addresses=["hello@acme.com", "not-an-address"],
        reasoning="Listed on the contact page.",
    ))
    pipeline = make_pipeline(extractor)

    result = await pipeline.extract_from_company(CompanyLookupRequest(company_info="acme.com"))

    assert result.addresses == ["hello@acme.com"]
    assert "Found 2 address(es) associated with the company." in result.narrative
    assert "Listed on the contact page." in result.narrative


@pytest.mark.asyncio
async def test_basic_validation_mode_uses_format_check(make_pipeline):
    extractor = FakeExtractor(extract_addresses=RawAddressExtraction(
        extracted_emails=["a@b.co", "x@"],
        original_text_character_count=120,
    ))
    validator = FakeValidator()
    pipeline = make_pipeline(extractor, validator=validator, text_validation_mode="basic")

    result = await pipeline.extract_from_text(TextExtractionRequest(text="a@b.co and x@"))

    assert result.addresses == ["a@b.co"]
    assert validator.calls == []
    assert "Extracted 2 potential address(es) from the text (120 characters)." in result.narrative
    assert "Basic format check accepted 1 of 2 address(es)." in result.narrative


@pytest.mark.asyncio
async def test_blank_input_skips_language_model(make_pipeline):
    extractor = FakeExtractor()
    pipeline = make_pipeline(extractor)

    result = await pipeline.find_by_criteria(CriteriaSearchRequest(criteria="   "))

    assert result.addresses == []
    assert extractor.calls == []
    assert result.narrative == "No input was provided, so nothing was searched."


@pytest.mark.asyncio
async def test_failed_extraction_returns_explained_empty_result(make_pipeline):
    pipeline = make_pipeline(FakeExtractor(extract_domains=None))

    result = await pipeline.generate_from_domains(DomainLookupRequest(domains_text="acme.com"))

    assert result.addresses == []
    assert "could not process the request" in result.narrative
    assert result.events[-1].reason == HaltReason.EXTRACTOR_FAILED


@pytest.mark.asyncio
async def test_close_closes_every_collaborator(make_pipeline):
    extractor = FakeExtractor()
    validator = FakeValidator()
    pipeline = make_pipeline(extractor, validator=validator)

    await pipeline.close()

    assert extractor.closed is True
    assert validator.closed is True


def test_default_operations_follow_settings(settings):
    operations = default_operations(settings.model_copy(update={"result_cap": 12, "domains_fanout_source": "scraper"}))

    criteria = operations[Operation.FIND_BY_CRITERIA]
    assert criteria.uses_domain_fanout is True
    assert criteria.validation_mode == ValidationMode.FULL
    assert criteria.cap == 12

    domains = operations[Operation.GENERATE_FROM_DOMAINS]
    assert domains.fanout_source == FanoutSource.SCRAPER
    assert domains.validation_mode == ValidationMode.NONE
    assert domains.generic_prefixes == ("contact", "info", "support", "sales")

    for operation in (Operation.EXTRACT_FROM_TEXT, Operation.GENERATE_FROM_NAMES, Operation.EXTRACT_FROM_COMPANY):
        assert operations[operation].uses_domain_fanout is False
        assert operations[operation].cap == 0
