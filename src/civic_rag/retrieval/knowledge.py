"""In-memory civic knowledge base and polling-booth directory."""

from __future__ import annotations

import logging
import re
from math import asin, cos, radians, sin, sqrt

from civic_rag.types import BoothRecord, Locale, Passage, PassageMetadata, RetrievalMethod

logger = logging.getLogger(__name__)

_EARTH_RADIUS_KM = 6371.0
_CONSTITUENCY = "LAC 97-Kottayam"
_BOOTH_SOURCE = "CEO Kerala — LAC 97-Kottayam Polling Stations"
_BOOTH_SOURCE_URL = "https://ceokerala.gov.in/kottayam/polling-stations"


def _passage(
    passage_id: str, content: str, source: str, url: str, updated: str, section: str
) -> Passage:
    return Passage(
        id=passage_id,
        content=content,
        metadata=PassageMetadata(source=source, url=url, last_updated=updated, section=section),
        method=RetrievalMethod.VECTOR,
    )


_ECI_FORMS = "https://voters.eci.gov.in/"

CIVIC_PASSAGES: tuple[Passage, ...] = (
    _passage(
        "kb-001",
        "To register as a voter in Kerala, you must be an Indian citizen, at least 18 years old "
        "on the qualifying date (January 1), and a resident of the constituency. Fill Form 6 at "
        "voters.eci.gov.in or visit your nearest Electoral Registration Officer (ERO).",
        "Election Commission of India — Voter Registration Guide",
        _ECI_FORMS,
        "2026-01-10",
        "Registration",
    ),
    _passage(
        "kb-002",
        "Documents required for voter registration: (1) Proof of age — birth certificate, school "
        "leaving certificate, passport, or PAN card. (2) Proof of address — Aadhaar card, utility "
        "bill, bank passbook, or rent agreement. (3) One recent passport-size photograph.",
        "CEO Kerala — Required Documents",
        "https://ceokerala.gov.in/registration-documents",
        "2026-01-05",
        "Documents",
    ),
    _passage(
        "kb-003",
        "Kottayam district has assembly constituencies including Vaikom, Kottayam, Puthuppally, "
        "Changanassery, Kanjirappally, and Pala. The district is part of the Kottayam (Lok Sabha) "
        "parliamentary constituency.",
        "CEO Kerala — Kottayam District Profile",
        "https://ceokerala.gov.in/kottayam",
        "2026-01-15",
        "District Info",
    ),
    _passage(
        "kb-004",
        "To find your polling booth, use the Electoral Search portal at electoralsearch.eci.gov.in. "
        "Enter your EPIC number or search by name, father's name, and age. You can also SMS your "
        "EPIC number to 1950.",
        "ECI — Booth Locator",
        "https://electoralsearch.eci.gov.in/",
        "2026-01-12",
        "Booth Locator",
    ),
    _passage(
        "kb-005",
        "Acceptable photo ID documents at polling booths include: (1) EPIC/Voter ID card, "
        "(2) Aadhaar, (3) Passport, (4) Driving License, (5) PAN card, (6) Smart Card issued by RGI "
        "under NPR, (7) MNREGA Job Card, (8) Health Insurance Smart Card (RSBY), (9) Bank/Post "
        "Office passbook with photo, (10) Service ID of PSU/Government employees, (11) Pension "
        "document with photo, (12) MP/MLA/MLC official identity card.",
        "ECI — Approved ID Documents",
        "https://eci.gov.in/voter-id-documents",
        "2025-12-20",
        "Voter ID",
    ),
    _passage(
        "kb-006",
        "SVEEP (Systematic Voters' Education and Electoral Participation) is the flagship program "
        "of the Election Commission of India to enhance voter awareness, literacy, and "
        "participation. Activities include campus ambassadors, voter awareness forums, and "
        "cultural events.",
        "ECI — About SVEEP",
        "https://ecisveep.nic.in/",
        "2026-01-01",
        "About",
    ),
    _passage(
        "kb-007",
        "To report election violations, you can: (1) Use the cVIGIL mobile app, (2) Call the "
        "Election Commission helpline at 1950, (3) File a complaint at the nearest returning "
        "officer's office. Reports are tracked and acted upon within 100 minutes under the cVIGIL "
        "protocol.",
        "ECI — cVIGIL & Violation Reporting",
        "https://cvigil.eci.gov.in/",
        "2026-01-08",
        "Violations",
    ),
    _passage(
        "kb-008",
        "Kerala elections use Electronic Voting Machines (EVMs) with Voter Verifiable Paper Audit "
        "Trail (VVPAT). After pressing the button on the EVM, the VVPAT displays the candidate's "
        "name and symbol for 7 seconds, then drops the slip into a sealed box for verification if "
        "needed.",
        "ECI — EVM & VVPAT Guide",
        "https://eci.gov.in/evm-vvpat",
        "2025-11-15",
        "EVM",
    ),
    _passage(
        "kb-vr-001",
        "Polling hours in Kerala are from 7:00 AM to 6:00 PM. The first 30 minutes (6:30 AM – "
        "7:00 AM) are reserved for mock polls in the presence of polling agents. Voters who are in "
        "the queue at 6:00 PM will be allowed to vote.",
        "ECI — Voting Rules",
        "https://eci.gov.in/poll-timing",
        "2026-01-15",
        "Poll Timing",
    ),
    _passage(
        "kb-vr-002",
        "Step-by-step voting process: (1) Stand in queue at your assigned booth. (2) Show accepted "
        "photo ID to the polling officer. (3) Get your left index finger inked with indelible ink. "
        "(4) Receive a ballot slip. (5) Enter the voting compartment. (6) Press the button on the "
        "EVM next to your chosen candidate. (7) Check the VVPAT slip (visible for 7 seconds). "
        "(8) Exit the booth. (9) Your vote is secret — nobody can see your choice.",
        "ECI — Voting Process",
        "https://eci.gov.in/voting-process",
        "2026-01-15",
        "Voting Process",
    ),
    _passage(
        "kb-vr-003",
        "Prohibited items at polling stations: mobile phones, cameras, arms, loud speakers, party "
        "flags/banners within 200m. Strict silence period of 48 hours before polling day — no "
        "campaigning allowed.",
        "ECI — Prohibited Items",
        "https://eci.gov.in/voting-rules",
        "2026-01-15",
        "Prohibited Items",
    ),
    _passage(
        "kb-vr-004",
        "PwD voter facilities: wheelchair ramps at all polling stations, Braille-enabled dummy "
        "ballots for visually impaired voters, companion-assisted voting with Presiding Officer "
        "permission, priority entry for elderly/disabled voters, home voting option for those with "
        "40%+ disability.",
        "ECI — PwD Facilities",
        "https://eci.gov.in/pwd-facilities",
        "2026-01-15",
        "PwD Facilities",
    ),
    _passage(
        "kb-vr-005",
        "Tender vote: If someone has already voted using your identity, you can cast a \"tender "
        "vote\" on a paper ballot after informing the Presiding Officer. Your complaint will be "
        "recorded in Form 17A.",
        "ECI — Tender Vote",
        "https://eci.gov.in/tender-vote",
        "2026-01-15",
        "Tender Vote",
    ),
    _passage(
        "kb-vs-001",
        "Form 6 is for new voter registration. Eligibility: Indian citizen, 18+ years old on "
        "January 1 qualifying date, ordinary resident of the constituency. Required documents: "
        "proof of age (birth certificate, school leaving cert, passport, PAN, or Aadhaar), proof "
        "of address, and passport-size photograph. Apply at voters.eci.gov.in or visit your ERO "
        "to register.",
        "ECI — Form 6",
        _ECI_FORMS,
        "2026-01-15",
        "Forms",
    ),
    _passage(
        "kb-vs-002",
        "Form 6A is for overseas/NRI voter registration. Eligibility: Indian citizen living abroad "
        "with valid passport. Required documents: valid Indian passport, proof of overseas "
        "address, original address in India. NRI voters must vote in person at their enrolled "
        "constituency polling station.",
        "ECI — Form 6A",
        _ECI_FORMS,
        "2026-01-15",
        "Forms",
    ),
    _passage(
        "kb-vs-003",
        "Form 7 is for objection to inclusion / request for deletion from electoral roll. Used to "
        "report deceased voters, shifted voters, or duplicate entries. Required: EPIC number of "
        "entry to be objected, supporting evidence, applicant's own voter ID.",
        "ECI — Form 7",
        _ECI_FORMS,
        "2026-01-15",
        "Forms",
    ),
    _passage(
        "kb-vs-004",
        "Form 8 is used for corrections and updates to voter ID: name correction, address change "
        "(within constituency), photo update, PwD marking, replacement of lost/damaged EPIC card, "
        "and change of constituency (shifting residence).",
        "ECI — Form 8",
        _ECI_FORMS,
        "2026-01-15",
        "Forms",
    ),
    _passage(
        "kb-vs-005",
        "Form 12C is used by notified government employees who are posted outside their "
        "constituency during election duty. It allows them to vote as a service voter through "
        "postal ballot. Required: Service ID, posting order, Form 12C filled and attested by head "
        "of office.",
        "ECI — Form 12C",
        _ECI_FORMS,
        "2026-01-15",
        "Forms",
    ),
    _passage(
        "kb-cp-001",
        "cVIGIL is the Election Commission's mobile app for reporting Model Code of Conduct "
        "violations. Steps: (1) Download cVIGIL from Play Store/App Store. (2) Enable GPS and "
        "camera permissions. (3) Capture photo/video of the violation (max 2 min video). (4) Add a "
        "brief description. (5) Submit — the app auto-captures location and timestamp. "
        "(6) Receive a tracking ID to follow up.",
        "ECI — cVIGIL",
        "https://cvigil.eci.gov.in/",
        "2026-01-15",
        "Complaints",
    ),
    _passage(
        "kb-cp-002",
        "Offline complaint alternatives (without cVIGIL app): (1) Call voter helpline 1950. "
        "(2) Visit the nearest Returning Officer / Assistant Returning Officer. (3) Write to the "
        "District Election Officer. (4) Contact the booth-level officer (BLO) in your area.",
        "ECI — Offline Complaints",
        "https://eci.gov.in/complaints",
        "2026-01-15",
        "Complaints",
    ),
    _passage(
        "kb-tl-001",
        "2026 Kerala Legislative Assembly Election key dates: official dates are announced by the "
        "Election Commission of India. Election notification, nomination, scrutiny, withdrawal, "
        "poll date, and counting date are published on eci.gov.in and ceo.kerala.gov.in.",
        "ECI — Election Timeline",
        "https://eci.gov.in/",
        "2026-01-15",
        "Timeline",
    ),
    _passage(
        "kb-tl-002",
        "Model Code of Conduct (MCC): The MCC comes into effect from the date of election "
        "announcement and is lifted on the date results are declared. It governs the conduct of "
        "political parties, candidates, and the ruling government.",
        "ECI — MCC",
        "https://eci.gov.in/mcc",
        "2026-01-15",
        "MCC",
    ),
)


def _booth(
    number: int, title: str, lat: float, lng: float, landmark: str, area_ml: str, area: str
) -> BoothRecord:
    content = (
        f"Polling Station {number} ({title}) in {area}, {_CONSTITUENCY}, is located at "
        f"{lat:.4f} N, {lng:.4f} E and is identified by the landmark: {landmark}. Voters "
        f"assigned to booth {number} vote here."
    )
    content_ml = (
        f"പോളിംഗ് സ്റ്റേഷൻ {number} ({title}), {area_ml}. ലാൻഡ്‌മാർക്ക്: {landmark}."
    )
    return BoothRecord(
        id=f"booth-97-{number:03d}",
        station_number=number,
        title=title,
        content=content,
        content_ml=content_ml,
        source=_BOOTH_SOURCE,
        source_url=_BOOTH_SOURCE_URL,
        tags=(str(number), area.lower(), "kottayam", area_ml),
        lat=lat,
        lng=lng,
        landmark=landmark,
        area_ml=area_ml,
    )


BOOTH_RECORDS: tuple[BoothRecord, ...] = (
    _booth(1, "Govt. LP School Thiruvathukkal", 9.6010, 76.5440, "Near Thiruvathukkal Junction", "തിരുവാതുക്കൽ", "Thiruvathukkal"),
    _booth(2, "St. Joseph's UP School Thiruvathukkal", 9.6032, 76.5461, "Opposite Thiruvathukkal Church", "തിരുവാതുക്കൽ", "Thiruvathukkal"),
    _booth(3, "Govt. HSS Kottayam (North Wing)", 9.5940, 76.5225, "Near Kottayam Town Hall", "കോട്ടയം", "Kottayam Town"),
    _booth(4, "Govt. HSS Kottayam (South Wing)", 9.5938, 76.5229, "Near Kottayam Town Hall", "കോട്ടയം", "Kottayam Town"),
    _booth(5, "CMS College HS Chalukunnu", 9.5872, 76.5196, "Near CMS College Main Gate", "ചാലുകുന്ന്", "Chalukunnu"),
    _booth(6, "Baker Memorial Girls HS", 9.5881, 76.5260, "Near Baker Junction", "ബേക്കർ ജംഗ്ഷൻ", "Baker Junction"),
    _booth(7, "Govt. LP School Mudiyoorkkara", 9.6215, 76.5530, "Near Mudiyoorkkara Temple", "മുടിയൂർക്കര", "Mudiyoorkkara"),
    _booth(8, "Anganwadi Centre Sankranthy", 9.6161, 76.5390, "Near Sankranthy Bus Stop", "സംക്രാന്തി", "Sankranthy"),
    _booth(9, "MD Seminary HSS Kottayam", 9.5916, 76.5284, "Near Hotel Excalibur, Thellakom road", "കോട്ടയം", "Kottayam Town"),
    _booth(10, "Govt. UP School Nattakom", 9.5601, 76.5197, "Near Nattakom Panchayat Office", "നാട്ടകം", "Nattakom"),
)


def booth_to_passage(booth: BoothRecord) -> Passage:
    return Passage(
        id=booth.id,
        content=booth.content,
        metadata=PassageMetadata(
            source=booth.source,
            url=booth.source_url,
            last_updated="2026-02-01",
            section=f"Polling Station {booth.station_number}",
        ),
        method=RetrievalMethod.VECTOR,
    )


def build_knowledge_base(
    booths: tuple[BoothRecord, ...] | list[BoothRecord] = BOOTH_RECORDS,
    passages: tuple[Passage, ...] | list[Passage] = CIVIC_PASSAGES,
) -> tuple[Passage, ...]:
    """Curated civic facts followed by one passage per polling station."""
    collection = tuple(passages) + tuple(booth_to_passage(booth) for booth in booths)
    logger.info(
        "knowledge_base_built core=%d booths=%d total=%d",
        len(passages),
        len(booths),
        len(collection),
    )
    return collection


_NUMBER_PATTERNS = (
    re.compile(r"^\s*(\d{1,3})\s*$"),
    re.compile(r"(?:booth|station|polling\s*station)\s*(?:number\s*(?:is\s*)?)?#?\s*(\d+)", re.I),
    re.compile(r"(?:number|no\.?|#)\s*(?:is\s*)?(\d+)", re.I),
)


def parse_booth_number(query: str) -> int | None:
    for pattern in _NUMBER_PATTERNS:
        match = pattern.search(query)
        if match:
            return int(match.group(1))
    return None


def directions_url(lat: float, lng: float) -> str:
    return f"https://www.google.com/maps/dir/?api=1&destination={lat},{lng}"


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = radians(lat2 - lat1)
    d_lng = radians(lng2 - lng1)
    a = sin(d_lat / 2) ** 2 + cos(radians(lat1)) * cos(radians(lat2)) * sin(d_lng / 2) ** 2
    return 2 * _EARTH_RADIUS_KM * asin(sqrt(a))


class BoothDirectory:
    """Lookup over polling-station records by number, text or GPS position."""

    def __init__(self, booths: tuple[BoothRecord, ...] | list[BoothRecord] = BOOTH_RECORDS) -> None:
        self._booths = tuple(booths)

    @property
    def booths(self) -> tuple[BoothRecord, ...]:
        return self._booths

    @property
    def station_range(self) -> tuple[int, int]:
        numbers = [booth.station_number for booth in self._booths] or [0]
        return min(numbers), max(numbers)

    def by_number(self, number: int) -> list[BoothRecord]:
        return [booth for booth in self._booths if booth.station_number == number]

    def search(self, query: str, limit: int = 5) -> list[BoothRecord]:
        """Station number first, then weighted title/landmark/tag/content overlap."""
        number = parse_booth_number(query)
        if number is not None:
            exact = self.by_number(number)
            if exact:
                return exact[:limit]

        lowered = query.lower().strip()
        terms = [term for term in lowered.split() if len(term) > 2]
        scored: list[tuple[float, int, BoothRecord]] = []
        for position, booth in enumerate(self._booths):
            title = booth.title.lower()
            landmark = booth.landmark.lower()
            content = booth.content.lower()
            score = 0.0
            if lowered and lowered in title:
                score += 10
            if lowered and lowered in landmark:
                score += 8
            if booth.area_ml and booth.area_ml in query:
                score += 9
            for term in terms:
                score += 3 if term in title else 0
                score += 2 if term in landmark else 0
                score += sum(2 for tag in booth.tags if term in tag.lower())
                score += content.count(term) * 0.5
            if score > 0:
                scored.append((score, position, booth))

        scored.sort(key=lambda item: (-item[0], item[1]))
        return [booth for _, _, booth in scored[:limit]]

    def nearest(
        self, lat: float, lng: float, *, limit: int = 5, radius_km: float = 10.0
    ) -> list[tuple[BoothRecord, float]]:
        ranked = sorted(
            ((booth, haversine_km(lat, lng, booth.lat, booth.lng)) for booth in self._booths),
            key=lambda item: item[1],
        )
        return [(booth, distance) for booth, distance in ranked if distance <= radius_km][:limit]

    @staticmethod
    def format_booth(booth: BoothRecord, locale: Locale) -> str:
        url = directions_url(booth.lat, booth.lng)
        if locale == "ml":
            return (
                f"**പോളിംഗ് സ്റ്റേഷൻ {booth.station_number}** — {booth.title}\n"
                f"- **ലാൻഡ്‌മാർക്ക്:** {booth.landmark}\n"
                f"- **GPS:** {booth.lat}°N, {booth.lng}°E\n"
                f"- [Google Maps-ൽ വഴി കാണുക]({url})"
            )
        return (
            f"**Polling Station {booth.station_number}** — {booth.title}\n"
            f"- **Landmark:** {booth.landmark}\n"
            f"- **GPS:** {booth.lat}°N, {booth.lng}°E\n"
            f"- [Get Directions]({url})"
        )

    @classmethod
    def format_nearest(cls, booth: BoothRecord, distance_km: float, locale: Locale) -> str:
        label = "ദൂരം" if locale == "ml" else "Distance"
        return f"{cls.format_booth(booth, locale)}\n- **{label}:** {distance_km:.1f} km"
