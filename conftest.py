"""
Fixture condivise: generatore di testo deterministico e dizionari su file temporanei.
"""

from typing import Any, Dict, List, Optional

import pytest

from jobsync.services.dictionary_loader import DictionaryLoader

DEGREES_YAML = """
degrees:
  - key: bs_information_technology
    canonical: Bachelor of Science in Information Technology
    level: Bachelor
    field_group: computing
    aliases: [BSIT, BS in IT]
  - key: bs_computer_science
    canonical: Bachelor of Science in Computer Science
    level: Bachelor
    field_group: computing
    aliases: [BSCS]
  - key: bs_accountancy
    canonical: Bachelor of Science in Accountancy
    level: Bachelor
    field_group: business
    aliases: [BSA]
"""

ELIGIBILITIES_YAML = """
eligibilities:
  csc_professional:
    canonical: Career Service Professional
    category: civil_service
    aliases: [CS Professional, CSE Professional]
  ra_1080_cpa:
    canonical: Certified Public Accountant
    category: professional_license
    aliases: CPA, RA 1080 CPA
"""


class FakeTextGenerator:
    """
    Implementazione deterministica di TextGenerator.

    classify_responses: sottostringa del prompt -> risposta (prima corrispondenza vince)
    """

    def __init__(
        self,
        classify_responses: Optional[Dict[str, Any]] = None,
        default_classification: Optional[Dict[str, Any]] = None,
        generate_text: str = "",
        error: Optional[Exception] = None,
    ):
        self.classify_responses = classify_responses or {}
        self.default_classification = default_classification
        self.generate_text = generate_text
        self.error = error
        self.classify_calls: List[str] = []
        self.generate_calls: List[str] = []

    async def classify(self, prompt: str, system_prompt: Optional[str] = None) -> Optional[Dict[str, Any]]:
        self.classify_calls.append(prompt)
        if self.error is not None:
            raise self.error
        for marker, response in self.classify_responses.items():
            if marker in prompt:
                return response
        return self.default_classification

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> str:
        self.generate_calls.append(prompt)
        if self.error is not None:
            raise self.error
        return self.generate_text


@pytest.fixture
def degrees_file(tmp_path):
    path = tmp_path / "degrees.yaml"
    path.write_text(DEGREES_YAML, encoding="utf-8")
    return path


@pytest.fixture
def eligibilities_file(tmp_path):
    path = tmp_path / "eligibilities.yaml"
    path.write_text(ELIGIBILITIES_YAML, encoding="utf-8")
    return path


@pytest.fixture
def dictionary_loader(degrees_file, eligibilities_file):
    return DictionaryLoader(degrees_path=degrees_file, eligibilities_path=eligibilities_file)


@pytest.fixture
def fake_llm():
    return FakeTextGenerator()
