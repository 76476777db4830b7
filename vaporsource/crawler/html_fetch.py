"""
HTML extraction for the job board's listing and detail pages.

Selectors are best effort: each field has a list of fallbacks and a
placeholder default, so a partially rendered page still yields a record.
"""
import logging
import re
from datetime import datetime
from typing import List, Optional, Tuple
from urllib.parse import quote_plus, urljoin

from bs4 import BeautifulSoup

from vaporsource.models import RawRecord

logger = logging.getLogger(__name__)

JOB_ID_RE = re.compile(r"JobID=(\d+)", re.IGNORECASE)
POSTED_RE = re.compile(r"Posted:\s*(.+?)(?:\s*-|$)")
EXPIRES_RE = re.compile(r"Expires:\s*<strong>(.*?)</strong>", re.IGNORECASE | re.DOTALL)

LISTING_LINK_SELECTOR = "h2.with-badge a"

TITLE_SELECTORS = ["h1.margin-bottom", "h1.job-view-header", "h1"]
COMPANY_SELECTORS = ["h4 .capital-letter", "span.job-view-employer"]
LOCATION_SELECTORS = ["h4 small.wrappable", "span.job-view-location"]
DESCRIPTION_SELECTORS = [
    "span#TrackingJobBody",
    "div.JobViewJobBody",
    "div.job-view-description",
    "div.directJobBody",
    "#jobViewFrame",
]

UNKNOWN_TITLE = "Unknown Title"
UNKNOWN_COMPANY = "Unknown Company"
UNKNOWN_LOCATION = "Unknown Location"
NO_DESCRIPTION = "No description available"
NOT_SPECIFIED = "Not specified"
UNKNOWN_DATE = "Unknown Date"


def build_search_url(base_url: str, query: str, page: int) -> str:
    """Search results URL for one page of a query"""
    terms = quote_plus(query.strip())
    return (
        f"{base_url.rstrip('/')}/jobsearch/powersearch.aspx?q={terms}"
        f"&rad_units=miles&pp=25&nosal=true&vw=b&setype=2&pg={page}&re=3"
    )


def normalize_posted_date(date_str: str) -> str:
    """Convert M/D/YYYY to YYYY-MM-DD; any other format passes through."""
    date_str = date_str.strip()
    try:
        return datetime.strptime(date_str, "%m/%d/%Y").strftime("%Y-%m-%d")
    except ValueError:
        return date_str


def extract_listing_links(html: str, base_url: str) -> List[Tuple[str, str]]:
    """
    Find detail page links on a search results page.

    Returns:
        (absolute_url, external_id) pairs in page order. Links without a
        JobID parameter are skipped.
    """
    soup = BeautifulSoup(html, "html.parser")
    links = []
    for anchor in soup.select(LISTING_LINK_SELECTOR):
        href = anchor.get("href")
        if not href:
            continue
        url = urljoin(base_url, href)
        match = JOB_ID_RE.search(url)
        if not match:
            continue
        links.append((url, match.group(1)))
    return links


def _first_text(soup: BeautifulSoup, selectors: List[str]) -> Optional[str]:
    for selector in selectors:
        element = soup.select_one(selector)
        if element is None:
            continue
        text = element.get_text(" ", strip=True)
        if text:
            return text
    return None


def _extract_salary(soup: BeautifulSoup) -> Optional[str]:
    salary = _first_text(soup, ["p.job-view-salary"])
    if salary:
        return salary
    for span in soup.select("dl span"):
        dt = span.find("dt")
        dd = span.find("dd")
        if dt and dd and "Salary" in dt.get_text():
            text = dd.get_text(" ", strip=True)
            if text:
                return text
    return None


def _extract_posted_date(soup: BeautifulSoup) -> Optional[str]:
    for paragraph in soup.find_all("p"):
        text = paragraph.get_text(" ", strip=True)
        if "Posted:" not in text:
            continue
        match = POSTED_RE.search(text)
        if match:
            return normalize_posted_date(match.group(1))
    return _first_text(soup, ["span.job-view-posting-date"])


def _extract_expires_date(html: str) -> Optional[str]:
    match = EXPIRES_RE.search(html)
    if match:
        value = BeautifulSoup(match.group(1), "html.parser").get_text(strip=True)
        return value or None
    return None


def extract_detail_fields(html: str, url: str, external_id: str) -> RawRecord:
    """Build a RawRecord from a job detail page."""
    soup = BeautifulSoup(html, "html.parser")

    return RawRecord(
        external_id=external_id,
        title=_first_text(soup, TITLE_SELECTORS) or UNKNOWN_TITLE,
        company=_first_text(soup, COMPANY_SELECTORS) or UNKNOWN_COMPANY,
        location=_first_text(soup, LOCATION_SELECTORS) or UNKNOWN_LOCATION,
        description=_first_text(soup, DESCRIPTION_SELECTORS) or NO_DESCRIPTION,
        salary=_extract_salary(soup) or NOT_SPECIFIED,
        posted_date=_extract_posted_date(soup) or UNKNOWN_DATE,
        source_url=url,
        expires_date=_extract_expires_date(html),
    )
