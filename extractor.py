"""
Language-model extraction steps: companies, domains, raw addresses, name-based
guesses and company addresses
"""
from typing import Optional

from loguru import logger

from models import (
    CompanyAddressExtraction,
    CompanyIdentification,
    DomainExtraction,
    NameGuesses,
    RawAddressExtraction,
)
from perplexity_client import PerplexityClient


COMPANY_PROMPT = """Identify companies relevant to the following search criteria. Their domains will be used to look up business email addresses with a contact discovery service.

Search Criteria: {criteria}

1. Identify a list of 5 to 10 diverse companies or organizations that are highly relevant.
   Focus on companies where business contact information is likely to be publicly discoverable.
   For each company, provide its name and its primary website domain (e.g. name "Google", domain "google.com").
2. Provide a brief "initial_reasoning" explaining why these companies were chosen.

Think expansively: if the criteria are narrow, consider related and adjacent industries, and say in your reasoning if and how you broadened the search.
Return the companies in the "companies" array, each with "name" and "domain"."""

COMPANY_SUGGESTION_ADDENDUM = """

For each company, also fill "suggested_emails" with a few generic role-based addresses on the company's domain, such as contact@, info@, sales@ or support@.
Never invent or guess the names of people. If no address can be suggested for a company, return an empty "suggested_emails" array."""

DOMAIN_PROMPT = """Extract company domain names from the website URLs or domains in the text below.

- Return only unique, valid-looking registrable domains (e.g. example.com, company.co.uk).
- For a URL like "https://www.example.com/about", return "example.com".
- Collapse subdomains (like app.example.com) to the root domain.
- Return the list in the "domains" array. If there are none, return an empty array.

Input Text:
{text}"""

RAW_ADDRESS_PROMPT = """Parse the text below and list every string that looks like an email address.

Do NOT filter, correct or verify addresses; verification happens in a later step. Just find as many as possible.

1. Put every potential address in "extracted_emails". If none are found, return an empty array.
2. Put the total number of characters of the input text in "original_text_character_count".
3. Put a one-line summary in "extraction_summary", such as "Initially extracted N email(s) from a text of Y characters."

Input Text:
{text}"""

NAME_GUESS_PROMPT = """Identify the full names of individuals in the text below and guess plausible email addresses for them.

1. For each identified name, generate 1-3 plausible addresses using common patterns:
   - firstname.lastname@domain
   - firstinitiallastname@domain
   - firstname_lastname@domain
   - lastname.firstname@domain
   - firstname@domain
2. Prefer public webmail domains such as gmail.com, outlook.com or yahoo.com.
   Use a company domain only when the text strongly and explicitly associates the person with that company; if the association is weak, stay with public domains.
3. Only return correctly formatted addresses (user@domain.tld) in "guessed_emails". If no names are found, return an empty array.
4. Put a one-line summary of the names identified and the approach taken in "generation_summary".

Input Text:
{text}"""

COMPANY_ADDRESS_PROMPT = """Find email addresses associated with the company below.

Company Information: {company_info}

Return every properly formatted address you can associate with the company in "email_addresses" (an empty array if none), and explain how you found them in "reasoning"."""


class GenerativeExtractor:
    """Fixed prompt templates run through the language model"""

    def __init__(self, llm: PerplexityClient):
        self.llm = llm

    async def identify_companies(self, criteria: str, suggest_emails: bool = True) -> Optional[CompanyIdentification]:
        """
        Find companies (and their domains) relevant to a criteria string

        Args:
            criteria: Profession, industry or role description
            suggest_emails: Also ask for generic role-based addresses per company

        Returns:
            CompanyIdentification, or None when the model call fails
        """
        prompt = COMPANY_PROMPT.format(criteria=criteria)
        if suggest_emails:
            prompt += COMPANY_SUGGESTION_ADDENDUM

        result = await self.llm.generate(prompt, CompanyIdentification)
        if result is not None and not suggest_emails:
            for company in result.companies:
                company.suggested_emails = []
        if result is not None:
            logger.info(f"Language model identified {len(result.companies)} companies for criteria")
        return result

    async def extract_domains(self, text: str) -> Optional[DomainExtraction]:
        """Pull root domains out of free text"""
        result = await self.llm.generate(DOMAIN_PROMPT.format(text=text), DomainExtraction)
        if result is not None:
            logger.info(f"Language model extracted {len(result.domains)} domains")
        return result

    async def extract_addresses(self, text: str) -> Optional[RawAddressExtraction]:
        """Pull email-like substrings out of free text"""
        result = await self.llm.generate(RAW_ADDRESS_PROMPT.format(text=text), RawAddressExtraction)
        if result is not None:
            logger.info(f"Language model extracted {len(result.extracted_emails)} raw addresses")
        return result

    async def guess_addresses_from_names(self, text: str) -> Optional[NameGuesses]:
        """Find person names in text and guess addresses for them"""
        result = await self.llm.generate(NAME_GUESS_PROMPT.format(text=text), NameGuesses)
        if result is not None:
            logger.info(f"Language model guessed {len(result.guessed_emails)} addresses from names")
        return result

    async def extract_company_addresses(self, company_info: str) -> Optional[CompanyAddressExtraction]:
        """Find addresses associated with a company name or website"""
        return await self.llm.generate(
            COMPANY_ADDRESS_PROMPT.format(company_info=company_info),
            CompanyAddressExtraction,
        )

    async def close(self):
        await self.llm.close()
