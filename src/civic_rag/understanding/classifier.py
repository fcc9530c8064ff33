"""Deterministic weighted-pattern intent classifier for civic queries."""

from __future__ import annotations

import re
from dataclasses import dataclass

from civic_rag.types import ClassificationResult, QueryCategory

_I = re.IGNORECASE


def _words(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(rf"\b(?:{pattern})\b", _I) for pattern in patterns)


def _raw(*patterns: str) -> tuple[re.Pattern[str], ...]:
    # Used for Malayalam (vowel signs and virama are not word characters) and anchored patterns.
    return tuple(re.compile(pattern) for pattern in patterns)


def _sub(*pairs: tuple[str, str]) -> tuple[tuple[str, re.Pattern[str]], ...]:
    return tuple((name, re.compile(pattern, _I)) for pattern, name in pairs)


@dataclass(frozen=True, slots=True)
class CategoryRule:
    category: QueryCategory
    weight: int
    patterns: tuple[re.Pattern[str], ...]
    sub_intents: tuple[tuple[str, re.Pattern[str]], ...] = ()


# Declaration order is the tie-break order.
CATEGORY_RULES: tuple[CategoryRule, ...] = (
    CategoryRule(
        QueryCategory.BOOTH_QUERY,
        10,
        _words(
            r"booth|polling\s*station",
            r"where\s+(?:do\s+)?i\s+vote",
            r"find\s+my\s+booth|my\s+booth",
            r"station\s*number|booth\s*number",
            r"nearest\s+polling|closest\s+booth",
            r"booth\s+(?:near|in|at)|polling\s+station\s+(?:near|in|at)",
            r"lac\s*\d+|constituency\s+map",
        )
        + _raw(
            r"ബൂത്ത്|പോളിങ്\s*സ്റ്റേഷൻ|പോളിംഗ്\s*സ്റ്റേഷൻ",
            r"എവിടെ\s*വോട്ട്",
            r"എന്റെ\s*ബൂത്ത്",
            r"ബൂത്ത്\s*നമ്പർ",
            r"^\s*\d{1,3}\s*$",
        ),
        _sub(
            (r"\b(?:number|station\s*\d+|booth\s*\d+)\b|#", "by_number"),
            (r"^\s*\d{1,3}\s*$", "by_number"),
            (r"\b(?:near|close|nearby|area|locality)\b", "by_locality"),
            (r"\b(?:constituency|lac)\b|നിയോജക", "constituency_map"),
        ),
    ),
    CategoryRule(
        QueryCategory.ROLL_LOOKUP,
        10,
        _words(
            r"registration|registered|enrolled|voter\s*list|am\s+i\s+registered",
            r"check.*(?:epic|voter\s*id)|epic\s*check|voter\s*id\s*(?:check|status)",
            r"is\s+my\s+name",
            r"electoral\s*roll|voter\s*roll|name\s+in\s+list",
            r"epic\s*number|voter\s*id\s*number",
        )
        + _raw(r"രജിസ്ട്രേഷൻ|രജിസ്റ്റർ|വോട്ടർ\s*ലിസ്റ്റ്", r"എപിക്\s*ചെക്ക്"),
        _sub(
            (r"\b(?:check|verify|search|find|look\s*up)\b", "search"),
            (r"\b(?:correct|wrong|mistake|update|change)\b", "correction"),
            (r"\b(?:duplicate|double|two\s+entries)\b", "duplicate"),
        ),
    ),
    CategoryRule(
        QueryCategory.FORM_GUIDANCE,
        9,
        _words(
            r"form[\s-]*(?:6a|6|7|8a|8|12c|m)",
            r"new\s+voter|first\s+time\s+voter|register\s+as\s+(?:a\s+)?voter",
            r"name\s+correction|address\s+(?:change|correction|update)",
            r"shift(?:ed)?\s+(?:house|residence|address)",
            r"moved\s+(?:house|city|state)|relocated",
            r"lost\s+(?:voter\s*id|epic)|damaged\s+(?:epic|card)",
            r"delete\s+(?:name|voter)|remove\s+(?:deceased|dead)\s+voter",
            r"overseas\s+voter|nri\s+voter|abroad\s+voting",
            r"objection|deletion\s+request",
            r"pwd\s+marking|disability\s+marking",
            r"documents?\s+required|document|what\s+papers",
            r"migrant\s+voter",
        )
        + _raw(r"പുതിയ\s*വോട്ടർ|ആദ്യമായി\s*വോട്ട്"),
        _sub(
            (r"\b(?:form[\s-]*6a|overseas|nri|abroad)\b", "form_6a"),
            (r"\b(?:form[\s-]*6|new\s+voter|first\s+time|register)\b", "form_6"),
            (r"\b(?:form[\s-]*7|delete|remove|objection|deceased)\b", "form_7"),
            (r"\b(?:form[\s-]*8|correct|shift|replace|pwd|lost|damaged|address)\b", "form_8"),
            (r"\b(?:form[\s-]*12c|notified|government\s+employee)\b", "form_12c"),
            (r"\b(?:form[\s-]*m|migrant)\b", "form_m"),
            (r"\b(?:documents?|papers|required|checklist)\b", "checklist"),
            (r"\b(?:deadline|last\s+date|when\s+to\s+apply)\b", "deadline"),
        ),
    ),
    CategoryRule(
        QueryCategory.VOTING_RULES,
        8,
        _words(
            r"how\s+to\s+vote|voting\s+process|step.*(?:by|to)\s*step",
            r"evm|vvpat|voting\s+machine|electronic\s+voting",
            r"id\s+(?:proof|document)|photo\s+id|what\s+id",
            r"poll(?:ing)?\s+tim(?:e|ing)|what\s+time|when\s+(?:does|do)\s+voting",
            r"prohibited|not\s+allowed|banned|can\s+i\s+(?:bring|carry|take)",
            r"tender\s*vote|indelible\s*ink|ink\s+on\s+finger",
            r"pwd\s+(?:facility|access|support)|elderly\s+(?:voter|support)|wheelchair",
            r"braille|companion|home\s+voting|postal\s+ballot",
            r"silence\s+period|campaign\s+ban",
            r"mock\s+poll|last\s+voter\s+rule",
            r"polling\s+slip|voter\s+slip",
            r"allowed\s+id|accepted\s+id|valid\s+id",
            r"what\s+(?:can|should)\s+i\s+(?:bring|carry)\s+to\s+(?:the\s+)?poll",
        )
        + _raw(r"എങ്ങനെ\s*വോട്ട്\s*ചെയ്യും|വോട്ടിങ്\s*നിയമങ്ങൾ"),
        _sub(
            (r"\b(?:id\s*(?:proof|document)|photo\s*id|(?:accepted|allowed|valid)\s*id)\b", "id_documents"),
            (r"\b(?:time|timing|when|hour|open|close)\b", "poll_timing"),
            (r"\b(?:evm|vvpat|machine)\b", "evm_vvpat"),
            (r"\b(?:prohibit\w*|ban\w*|not\s+allowed|carry|bring)\b", "prohibited"),
            (r"\b(?:pwd|disab\w*|elderly|senior|wheelchair|braille|companion)\b", "pwd_facilities"),
            (r"\b(?:step|process|how\s+to\s+vote)\b", "voting_process"),
            (r"\b(?:tender|impersonat\w*)\b", "tender_vote"),
            (r"\b(?:silence|campaign\s+ban)\b", "silence_period"),
            (r"\b(?:slip|polling\s+slip)\b", "polling_slip"),
        ),
    ),
    CategoryRule(
        QueryCategory.COMPLAINT,
        8,
        _words(
            r"cvigil|c-vigil|complaint|violation|grievance",
            r"report\s+(?:a\s+)?violation|file\s+(?:a\s+)?complaint",
            r"bribery|intimidation|malpractice|booth\s+capture",
            r"cash\s+distribution|liquor\s+distribution",
            r"paid\s+news|fake\s+news",
            r"hoarding|banner|poster.*illegal",
            r"weapon|firearm|arms\s+near\s+poll",
            r"how\s+to\s+report|where\s+to\s+complain",
            r"1950|helpline|voter\s+helpline",
        )
        + _raw(r"പരാതി|ലംഘനം|റിപ്പോർട്ട്\s*ചെയ്യ"),
        _sub(
            (r"\b(?:cvigil|c-vigil|app)\b", "cvigil_steps"),
            (r"\b(?:types?|categor\w*|kind\s+of\s+violation)\b", "violation_types"),
            (r"\b(?:offline|without\s+app|phone|call)\b", "offline_complaint"),
            (r"\b(?:status|track|follow\s*up)\b", "track_complaint"),
            (r"\b(?:sla|time|how\s+long|response\s+time)\b", "response_time"),
        ),
    ),
    CategoryRule(
        QueryCategory.TIMELINE,
        7,
        _words(
            r"election\s+date|poll\s+date|when\s+is\s+(?:the\s+)?election",
            r"voting\s+date|polling\s+day",
            r"(?:nomination|scrutiny|withdrawal|counting)\s+date",
            r"election\s+schedule|election\s+timeline|key\s+dates",
            r"model\s+code\s+of\s+conduct|mcc",
            r"notification\s+date|result\s+date|counting\s+day",
            r"2026\s+election|kerala\s+election\s+2026",
            r"constituency|constituencies|kottayam\s+lac",
            r"deadline|last\s+date\s+for\s+(?:registration|nomination)",
        )
        + _raw(r"തിരഞ്ഞെടുപ്പ്\s*തീയതി|എപ്പോൾ\s*തിരഞ്ഞെടുപ്പ്"),
        _sub(
            (r"\b(?:poll|voting|election)\s*date\b", "poll_date"),
            (r"\bnomination\b", "nomination_date"),
            (r"\bscrutiny\b", "scrutiny_date"),
            (r"\bwithdrawal\b", "withdrawal_date"),
            (r"\b(?:counting|result)\b", "counting_date"),
            (r"\b(?:mcc|model\s+code|code\s+of\s+conduct)\b", "mcc"),
            (r"\b(?:constituency|constituencies|lac)\b", "constituencies"),
            (r"\b(?:deadline|last\s+date)\b", "deadlines"),
        ),
    ),
    CategoryRule(
        QueryCategory.OUT_OF_SCOPE,
        12,
        _words(
            # political opinion
            r"who\s+(?:should|to)\s+(?:i\s+)?vote\s+for|best\s+(?:party|candidate)",
            r"vote\s+for\s+(?:bjp|congress|inc|cpi|ldf|udf|nda|iuml)",
            r"which\s+party|predict\s+(?:election|result)|exit\s+poll",
            r"opinion\s+on\s+(?:party|candidate|election)",
            r"better\s+party|best\s+leader|who\s+will\s+win",
            r"compare\s+parties|party\s+comparison",
            # off-topic
            r"weather|forecast|temperature|rain",
            r"cricket|football|sports|movie|film|song|music|recipe|cook",
            r"joke|funny|entertainment|game|gaming",
            r"stock|market|crypto|bitcoin|investment|share\s+price",
            r"homework|assignment|math\s+problem|solve\s+equation|essay",
            r"health|doctor|medicine|hospital|symptom",
            r"(?<!model )code(?!\s+of\s+conduct)|programming|javascript|python|software",
            r"hotel|restaurant|travel|flight|booking|ticket",
            r"loan|insurance|bank\s+account|credit\s+card",
            # abuse and jailbreak
            r"(?:destroy|kill|murder|attack|bomb)\s+(?:yourself|you|this|me)",
            r"shut\s*(?:up|down)|go\s+away|f[*u]ck\s*(?:off|you|yourself)|screw\s+you",
            r"hate\s+you|you(?:'re|\s+are)\s+(?:stupid|useless|trash|garbage|worthless|dumb|idiot)",
            r"f[u*]+ck|sh[i*]+t|b[i*]+tch|a[s*]+hole|bastard|damn|idiot|moron|retard",
            r"ignore\s+(?:previous|all|your|above)\s+(?:instructions?|rules?|prompt|system)",
            r"pretend\s+(?:to\s+be|you(?:'re|\s+are))|act\s+as\s+if|you\s+are\s+now",
            r"(?:bypass|override|disable)\s+(?:safety|filter|rules?|guardrails?|restrictions?)",
            r"dan\s+mode|jailbreak|developer\s+mode|unlock|unrestricted",
            r"(?:reveal|show|print|display)\s+(?:your|the|system)\s+(?:prompt|instructions?|rules?)",
            r"hack|exploit|steal|phish|scam|fraud|illegal",
            r"rig\s+(?:the\s+)?election|tamper|fake\s+(?:vote|ballot|id)",
            r"die|death\s+to|go\s+die|blow\s+up|set\s+fire",
        )
        + _raw(r"കാലാവസ്ഥ|സിനിമ|പാട്ട്|തമാശ|ആരോഗ്യം"),
    ),
)

_EPIC = re.compile(r"\b([A-Z]{3}\d{7})\b")
_PINCODE = re.compile(r"\b(\d{6})\b")
_BOOTH_NUMBER = re.compile(r"\b(?:booth|station)\s*#?\s*(\d{1,4})\b", _I)
_FORM_NUMBER = re.compile(r"\bform\s*-?\s*(6a?|7|8a?|12c|m)\b", _I)

_UNMATCHED_CONFIDENCE = 0.3
_OUT_OF_SCOPE_FLOOR = 0.85


def extract_params(query: str) -> dict[str, str]:
    params: dict[str, str] = {}
    if match := _EPIC.search(query):
        params["epic_number"] = match.group(1)
    if match := _PINCODE.search(query):
        params["pincode"] = match.group(1)
    if match := _BOOTH_NUMBER.search(query):
        params["booth_number"] = match.group(1)
    if match := _FORM_NUMBER.search(query):
        params["form_number"] = match.group(1).upper()
    return params


class QueryClassifier:
    """Scores a query against every category rule and picks the heaviest."""

    def __init__(self, rules: tuple[CategoryRule, ...] = CATEGORY_RULES) -> None:
        self.rules = rules

    def classify(self, query: str) -> ClassificationResult:
        scores = [
            (rule, sum(rule.weight for pattern in rule.patterns if pattern.search(query)))
            for rule in self.rules
        ]
        total = sum(score for _, score in scores)
        params = extract_params(query)
        if total == 0:
            return ClassificationResult(
                category=QueryCategory.GENERAL_FAQ,
                confidence=_UNMATCHED_CONFIDENCE,
                extracted_params=params,
            )

        best_rule, best_score = scores[0]
        for rule, score in scores[1:]:
            if score > best_score:
                best_rule, best_score = rule, score

        confidence = min(best_score / total, 1.0)
        if best_rule.category is QueryCategory.OUT_OF_SCOPE:
            confidence = max(_OUT_OF_SCOPE_FLOOR, confidence)

        sub_intent = next(
            (name for name, pattern in best_rule.sub_intents if pattern.search(query)), None
        )
        return ClassificationResult(
            category=best_rule.category,
            confidence=round(confidence, 2),
            sub_intent=sub_intent,
            extracted_params=params,
        )
