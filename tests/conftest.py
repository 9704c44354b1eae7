import os
import sys

import pytest

# Ensure the repository root is on sys.path so the flat modules import
ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from config import Settings  # noqa: E402
from models import ValidationMode  # noqa: E402
from pipeline import DiscoveryPipeline  # noqa: E402
from validator import BasicFormatValidator  # noqa: E402

from fakes import FakeContactFinder, FakeValidator  # noqa: E402


@pytest.fixture
def settings():
    """Settings isolated from any local .env file"""
    return Settings(
        _env_file=None,
        perplexity_api_key=None,
        apollo_api_key=None,
        neverbounce_api_key=None,
        criteria_validation_mode="full",
        text_validation_mode="full",
        domains_fanout_source="contacts",
        result_cap=30,
        max_emails_per_domain=5,
        validation_chunk_size=10,
        generic_prefixes=["contact", "info", "support", "sales"],
    )


@pytest.fixture
def make_pipeline(settings):
    """Build a pipeline over fakes; keyword overrides are applied to settings"""
    def _make(extractor, contact_finder=None, validator=None, scraper=None, **overrides):
        pipeline_settings = settings.model_copy(update=overrides) if overrides else settings
        return DiscoveryPipeline(
            extractor=extractor,
            contact_finder=contact_finder or FakeContactFinder(),
            validators={
                ValidationMode.FULL: validator or FakeValidator(),
                ValidationMode.BASIC: BasicFormatValidator(),
            },
            scraper=scraper,
            settings=pipeline_settings,
        )
    return _make
