"""
Test Normalization Agent e Dictionary Loader
"""

import asyncio

import pytest

from conftest import FakeTextGenerator
from jobsync.agents.normalization_agent import (
    NormalizationAgent,
    normalize_job_and_applicant,
    parse_list_expression,
)
from jobsync.models.applicant import ApplicantRecord
from jobsync.models.canonical import ListMode
from jobsync.services.dictionary_loader import (
    CanonicalDictionary,
    DictionaryLoader,
    parse_dictionary_document,
)
from jobsync.services.errors import DictionaryLoadError, InvalidRecordError, LLMNotAvailableError

BSIT = "Bachelor of Science in Information Technology"
BSCS = "Bachelor of Science in Computer Science"


def _run(coro):
    return asyncio.run(coro)


# ═══════════════════════════════════════════════════════════════════════════
# LIST EXPRESSIONS
# ═══════════════════════════════════════════════════════════════════════════

@pytest.mark.parametrize("text,mode,tokens", [
    ("BS in IT and BS in CS", ListMode.AND, ["BS in IT", "BS in CS"]),
    ("BS in IT or BS in CS", ListMode.OR, ["BS in IT", "BS in CS"]),
    ("CPA, Career Service Professional", ListMode.OR, ["CPA", "Career Service Professional"]),
    ("CPA, RN and CSC", ListMode.AND, ["CPA", "RN", "CSC"]),
    ("BS in IT OR BS in CS", ListMode.OR, ["BS in IT", "BS in CS"]),
    ("Andrew Orlando Sandoval", ListMode.SINGLE, ["Andrew Orlando Sandoval"]),
    ("  BSIT  ", ListMode.SINGLE, ["BSIT"]),
    ("Bachelor  in  Marine Biology or BSIT", ListMode.OR, ["Bachelor  in  Marine Biology", "BSIT"]),
    ("CPA ,  Career\tService Professional", ListMode.OR, ["CPA", "Career\tService Professional"]),
    ("", ListMode.SINGLE, []),
])
def test_parse_list_expression(text, mode, tokens):
    expression = parse_list_expression(text)
    assert expression.mode == mode
    assert expression.tokens == tokens


def test_list_expression_joiner():
    assert parse_list_expression("A and B").joiner == " and "
    assert parse_list_expression("A, B").joiner == " or "
    assert not parse_list_expression("A").is_composite


# ═══════════════════════════════════════════════════════════════════════════
# DICTIONARY LOADER
# ═══════════════════════════════════════════════════════════════════════════

def test_parse_dictionary_document_list_and_map_forms():
    listed = parse_dictionary_document(
        {"degrees": [{"key": "bsit", "canonical": BSIT, "aliases": ["BSIT"]}, {"key": "broken"}]},
        "degree",
    )
    assert [entry.key for entry in listed] == ["bsit"]

    mapped = parse_dictionary_document(
        {"cpa": {"canonical": "Certified Public Accountant", "aliases": "CPA, RA 1080"}, "rn": "Registered Nurse"},
        "eligibility",
    )
    assert [entry.key for entry in mapped] == ["cpa", "rn"]
    assert mapped[0].aliases == ["CPA", "RA 1080"]
    assert mapped[1].canonical == "Registered Nurse"


def test_parse_dictionary_document_rejects_scalars():
    with pytest.raises(DictionaryLoadError):
        parse_dictionary_document("just a string", "degree")


def test_canonical_dictionary_first_alias_wins():
    entries = parse_dictionary_document([
        {"key": "first", "canonical": "First Degree", "aliases": ["Shared Alias"]},
        {"key": "second", "canonical": "Second Degree", "aliases": ["shared alias"]},
    ], "degree")
    dictionary = CanonicalDictionary("degree", entries)
    assert dictionary.lookup("SHARED ALIAS").key == "first"
    assert dictionary.lookup("second degree").key == "second"
    assert len(dictionary) == 2


def test_loader_reads_yaml_sources(dictionary_loader):
    _run(dictionary_loader.ensure_loaded())
    assert dictionary_loader.is_loaded
    assert dictionary_loader.degrees.lookup("bsit").key == "bs_information_technology"
    assert dictionary_loader.eligibilities.lookup("cpa").key == "ra_1080_cpa"


def test_loader_reads_csv_source(tmp_path, degrees_file):
    csv_path = tmp_path / "eligibilities.csv"
    csv_path.write_text(
        'key,canonical,category,aliases\n'
        'ra_1080_nurse,Registered Nurse,professional_license,"RN, Nurse License"\n',
        encoding="utf-8",
    )
    loader = DictionaryLoader(degrees_path=degrees_file, eligibilities_path=csv_path)
    _run(loader.ensure_loaded())
    entry = loader.eligibilities.lookup("nurse license")
    assert entry.key == "ra_1080_nurse"
    assert entry.category == "professional_license"


def test_loader_is_single_flight(dictionary_loader):
    async def scenario():
        await asyncio.gather(*(dictionary_loader.ensure_loaded() for _ in range(5)))
        await dictionary_loader.ensure_loaded()

    _run(scenario())
    assert dictionary_loader.load_count == 1


def test_loader_survives_cancelled_first_caller(dictionary_loader):
    async def scenario():
        first = asyncio.ensure_future(dictionary_loader.ensure_loaded())
        await asyncio.sleep(0)
        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first
        # il caricamento condiviso prosegue per il chiamante successivo
        await dictionary_loader.ensure_loaded()

    _run(scenario())
    assert dictionary_loader.is_loaded
    assert dictionary_loader.load_count == 1
    assert dictionary_loader.degrees.lookup("BSIT").key == "bs_information_technology"


def test_loader_retries_after_failed_load(dictionary_loader, monkeypatch):
    import jobsync.services.dictionary_loader as loader_module

    original = loader_module.read_dictionary_source
    calls = []

    def flaky_read(path, domain):
        calls.append(domain)
        if len(calls) == 1:
            raise RuntimeError("disk hiccup")
        return original(path, domain)

    monkeypatch.setattr(loader_module, "read_dictionary_source", flaky_read)

    async def scenario():
        with pytest.raises(RuntimeError):
            await dictionary_loader.ensure_loaded()
        await dictionary_loader.ensure_loaded()

    _run(scenario())
    assert dictionary_loader.is_loaded
    assert dictionary_loader.load_count == 2
    assert len(dictionary_loader.degrees) == 3


def test_loader_missing_source_leaves_empty_index(tmp_path, degrees_file):
    loader = DictionaryLoader(degrees_path=degrees_file, eligibilities_path=tmp_path / "missing.yaml")
    _run(loader.ensure_loaded())
    assert loader.is_loaded
    assert len(loader.degrees) == 3
    assert len(loader.eligibilities) == 0


# ═══════════════════════════════════════════════════════════════════════════
# SINGLE VALUE
# ═══════════════════════════════════════════════════════════════════════════

def test_canonical_string_is_idempotent(dictionary_loader, fake_llm):
    agent = NormalizationAgent(llm_service=fake_llm, dictionary_loader=dictionary_loader)
    result = _run(agent.normalize_degree_value(BSIT))
    assert result.canonical_key == "bs_information_technology"
    assert result.method == "dictionary"
    assert result.confidence == 1.0
    assert fake_llm.classify_calls == []


def test_blank_value_falls_back(dictionary_loader, fake_llm):
    agent = NormalizationAgent(llm_service=fake_llm, dictionary_loader=dictionary_loader)
    result = _run(agent.normalize_eligibility_value("   "))
    assert result.method == "fallback"
    assert result.confidence == 0
    assert result.canonical_key is None


def test_classifier_match(dictionary_loader):
    llm = FakeTextGenerator(classify_responses={'"BS in CS"': {"canonical_key": "bs_computer_science", "confidence": 0.9}})
    agent = NormalizationAgent(llm_service=llm, dictionary_loader=dictionary_loader)
    result = _run(agent.normalize_degree_value("BS in CS"))
    assert result.canonical_key == "bs_computer_science"
    assert result.method == "ai-classifier"
    assert result.confidence == pytest.approx(0.9)
    assert "bs_computer_science" in llm.classify_calls[0]


def test_classifier_default_confidences(dictionary_loader):
    llm = FakeTextGenerator(classify_responses={
        '"BS in CS"': {"canonical_key": "bs_computer_science"},
        '"Bachelor in Marine Biology"': {"canonical_key": "UNKNOWN"},
        '"Bachelor in Astrology"': {"canonical_key": "bs_astrology"},
    })
    agent = NormalizationAgent(llm_service=llm, dictionary_loader=dictionary_loader)

    matched = _run(agent.normalize_degree_value("BS in CS"))
    unknown = _run(agent.normalize_degree_value("Bachelor in Marine Biology"))
    invalid = _run(agent.normalize_degree_value("Bachelor in Astrology"))

    assert (matched.canonical_key, matched.confidence) == ("bs_computer_science", 0.8)
    assert (unknown.canonical_key, unknown.method, unknown.confidence) == (None, "ai-classifier", 0.3)
    assert (invalid.canonical_key, invalid.method, invalid.confidence) == (None, "ai-classifier", 0.2)


def test_unparseable_response_falls_back(dictionary_loader):
    llm = FakeTextGenerator(default_classification=None)
    agent = NormalizationAgent(llm_service=llm, dictionary_loader=dictionary_loader)
    result = _run(agent.normalize_degree_value("BS in CS"))
    assert result.method == "fallback"
    assert result.confidence == 0


@pytest.mark.parametrize("error", [RuntimeError("connection refused"), LLMNotAvailableError("offline")])
def test_service_failure_falls_back(dictionary_loader, error):
    agent = NormalizationAgent(llm_service=FakeTextGenerator(error=error), dictionary_loader=dictionary_loader)
    result = _run(agent.normalize_degree_value("BS in CS"))
    assert result.canonical_key is None
    assert result.method == "fallback"
    assert result.confidence == 0


def test_classification_is_memoized(dictionary_loader):
    llm = FakeTextGenerator(default_classification={"canonical_key": "bs_computer_science"})
    agent = NormalizationAgent(llm_service=llm, dictionary_loader=dictionary_loader)

    async def scenario():
        first = await agent.normalize_degree_value("BS in CS")
        second = await agent.normalize_degree_value("bs in cs")
        return first, second

    first, second = _run(scenario())
    assert len(llm.classify_calls) == 1
    assert second.canonical_key == first.canonical_key
    assert second.raw == "bs in cs"


def test_missing_eligibility_source_never_uses_dictionary(tmp_path, degrees_file):
    llm = FakeTextGenerator(default_classification={"canonical_key": "UNKNOWN"})
    loader = DictionaryLoader(degrees_path=degrees_file, eligibilities_path=tmp_path / "missing.yaml")
    agent = NormalizationAgent(llm_service=llm, dictionary_loader=loader)

    async def scenario():
        eligibilities = [
            await agent.normalize_eligibility_value(raw)
            for raw in ("Career Service Professional", "CPA", "Registered Nurse")
        ]
        degree = await agent.normalize_degree_value("BSIT")
        return eligibilities, degree

    eligibilities, degree = _run(scenario())
    assert all(result.method != "dictionary" for result in eligibilities)
    assert all(result.canonical_key is None for result in eligibilities)
    assert degree.method == "dictionary"
    assert degree.canonical_key == "bs_information_technology"


# ═══════════════════════════════════════════════════════════════════════════
# COMPOSITE LINES / RECORDS
# ═══════════════════════════════════════════════════════════════════════════

def test_composite_degree_preserves_and(dictionary_loader):
    llm = FakeTextGenerator(classify_responses={'"BS in CS"': {"canonical_key": "bs_computer_science"}})
    agent = NormalizationAgent(llm_service=llm, dictionary_loader=dictionary_loader)

    text, primary = _run(agent.normalize_composite_degree_string("BS in IT and BS in CS"))

    # primo token via dizionario, secondo via classificatore
    assert text == f"{BSIT} and {BSCS}"
    assert primary.key == "bs_information_technology"
    assert len(llm.classify_calls) == 1


def test_composite_degree_keeps_unresolved_tokens(dictionary_loader):
    llm = FakeTextGenerator(default_classification={"canonical_key": "UNKNOWN"})
    agent = NormalizationAgent(llm_service=llm, dictionary_loader=dictionary_loader)

    text, primary = _run(agent.normalize_composite_degree_string("Bachelor in Marine Biology or BSIT"))

    assert text == f"Bachelor in Marine Biology or {BSIT}"
    assert primary.key == "bs_information_technology"


def test_composite_degree_keeps_unresolved_token_spacing(dictionary_loader):
    llm = FakeTextGenerator(default_classification={"canonical_key": "UNKNOWN"})
    agent = NormalizationAgent(llm_service=llm, dictionary_loader=dictionary_loader)

    text, _ = _run(agent.normalize_composite_degree_string("Bachelor  in  Marine Biology  or  BSIT"))

    assert text == f"Bachelor  in  Marine Biology or {BSIT}"


def test_composite_eligibility_line(dictionary_loader, fake_llm):
    agent = NormalizationAgent(llm_service=fake_llm, dictionary_loader=dictionary_loader)
    line = _run(agent.normalize_composite_eligibility_line("CPA, CS Professional"))
    assert line == "Certified Public Accountant or Career Service Professional"


def test_normalize_applicant_copies_record(dictionary_loader, fake_llm):
    agent = NormalizationAgent(llm_service=fake_llm, dictionary_loader=dictionary_loader)
    record = ApplicantRecord(
        applicant_id="app-1",
        applicant_name="Maria Santos",
        highest_educational_attainment="BSIT",
        eligibilities=[{"eligibility_title": "CSE Professional"}],
        total_years_experience=3,
    )

    normalized = _run(agent.normalize_applicant(record))

    assert isinstance(normalized, ApplicantRecord)
    assert normalized.applicant_id == "app-1"
    assert normalized.highest_educational_attainment == BSIT
    assert normalized.eligibilities[0].eligibility_title == "Career Service Professional"
    assert normalized.degree_level == "bachelor"
    assert normalized.degree_field_group == "computing"
    # input invariato
    assert record.highest_educational_attainment == "BSIT"
    assert record.eligibilities[0].eligibility_title == "CSE Professional"
    assert record.degree_level is None


def test_normalize_job_and_applicant_simple_api(dictionary_loader, fake_llm):
    job = {
        "degree_requirement": "BSIT or BSCS",
        "eligibilities": ["CPA"],
        "years_of_experience": 1,
    }
    applicant = {"highest_educational_attainment": "BSA", "total_years_experience": 2}

    normalized_job, normalized_applicant = _run(normalize_job_and_applicant(
        job, applicant, llm_service=fake_llm, dictionary_loader=dictionary_loader,
    ))

    assert normalized_job.degree_requirement == f"{BSIT} or {BSCS}"
    assert normalized_job.eligibilities == ["Certified Public Accountant"]
    assert normalized_job.degree_field_group == "computing"
    assert normalized_applicant.highest_educational_attainment == "Bachelor of Science in Accountancy"
    assert normalized_applicant.degree_field_group == "business"
    assert job["degree_requirement"] == "BSIT or BSCS"


def test_normalize_invalid_record_raises(dictionary_loader, fake_llm):
    agent = NormalizationAgent(llm_service=fake_llm, dictionary_loader=dictionary_loader)
    with pytest.raises(InvalidRecordError):
        _run(agent.normalize_job({"degree_requirement": "BSIT"}))
