"""Pattern tables for rule-based extraction.

Everything the rule engine knows lives in the ordered tables below:

- ``PATTERN_RULES``: ``(name, category, pattern, confidence, normalizer)``
  rows, applied in declaration order. Within a category an earlier row wins
  when two rows find the same fact.
- ``CASE_TYPE_RULES``: keyword groups per case type, tested in declaration
  order; the first matching case type wins.
- ``DOCUMENT_TYPE_INDICATORS``: keyword lists per document type, same policy.

Confidence values are fixed baselines per row, not learned scores.
"""

import re
from calendar import monthrange
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Callable, NamedTuple

from .models import (
    AmountValue,
    ClauseValue,
    DateValue,
    ElementCategory,
    ElementValue,
    FactValue,
    PartyValue,
)


class Candidate(NamedTuple):
    """A normalized match produced by one pattern row."""

    value: ElementValue
    description: str
    span: tuple[int, int]


Normalizer = Callable[[re.Match, str], list[Candidate]]


@dataclass(frozen=True)
class PatternRule:
    """One row of the rule table."""

    name: str
    category: ElementCategory
    pattern: re.Pattern
    confidence: float
    normalizer: Normalizer


# =============================================================================
# Shared helpers
# =============================================================================

_CN_DIGITS = {
    "零": 0, "〇": 0, "○": 0, "Ｏ": 0, "O": 0,
    "一": 1, "壹": 1,
    "二": 2, "贰": 2, "两": 2,
    "三": 3, "叁": 3,
    "四": 4, "肆": 4,
    "五": 5, "伍": 5,
    "六": 6, "陆": 6,
    "七": 7, "柒": 7,
    "八": 8, "捌": 8,
    "九": 9, "玖": 9,
}
_CN_UNITS = {"十": 10, "拾": 10, "百": 100, "佰": 100, "千": 1000, "仟": 1000}
_CN_BIG_UNITS = {"万": 10**4, "萬": 10**4, "亿": 10**8, "億": 10**8}

CN_NUMERALS = "".join(_CN_DIGITS) + "".join(_CN_UNITS) + "".join(_CN_BIG_UNITS)


def cn_to_int(text: str) -> int:
    """Convert a Chinese (or mixed) numeral to an int.

    Digit runs without unit characters are read positionally, so
    ``二〇二四`` is 2024 while ``一百零五`` is 105. Unknown characters
    are ignored.
    """
    text = text.strip()
    if not text:
        return 0
    if text.isdigit():
        return int(text)

    has_units = any(ch in _CN_UNITS or ch in _CN_BIG_UNITS for ch in text)
    if not has_units:
        digits = [
            str(_CN_DIGITS[ch]) if ch in _CN_DIGITS else ch
            for ch in text
            if ch in _CN_DIGITS or ch.isdigit()
        ]
        return int("".join(digits)) if digits else 0

    total = section = number = 0
    for ch in text:
        if ch in _CN_DIGITS:
            number = _CN_DIGITS[ch]
        elif ch.isdigit():
            number = number * 10 + int(ch)
        elif ch in _CN_UNITS:
            section += (number or 1) * _CN_UNITS[ch]
            number = 0
        elif ch in _CN_BIG_UNITS:
            section += number
            total += (section or 1) * _CN_BIG_UNITS[ch]
            section = number = 0
    return total + section + number


def to_iso_date(year: int | str, month: int | str, day: int | str) -> str | None:
    """Format a date as ISO, or None when it is not a real calendar date."""
    try:
        return date(int(year), int(month), int(day)).isoformat()
    except (TypeError, ValueError):
        return None


def sentence_around(text: str, start: int, end: int) -> str:
    """Return the sentence (clause between terminators) containing a span."""
    terminators = "。；;！？!?\n"
    left = max(text.rfind(t, 0, start) for t in terminators)
    rights = [i for i in (text.find(t, end) for t in terminators) if i != -1]
    right = min(rights) if rights else len(text)
    return text[left + 1:right]


def _body_span(match: re.Match) -> tuple[int, int]:
    if "body" in match.re.groupindex and match.group("body") is not None:
        return match.span("body")
    return match.span()


def _first_keyword(
    context: str, table: tuple[tuple[str, tuple[str, ...]], ...], default: str
) -> str:
    for label, keywords in table:
        if any(keyword in context for keyword in keywords):
            return label
    return default


# =============================================================================
# Dates
# =============================================================================

# Checked in order; the first label whose keyword appears in the sentence wins
DATE_TYPE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("filing", ("立案", "起诉", "诉至", "提起诉讼", "受理")),
    ("hearing", ("开庭", "庭审", "审理")),
    ("judgment", ("判决", "宣判", "裁定")),
    ("contract", ("签订", "订立", "合同", "协议")),
    ("payment", ("支付", "还款", "付款", "转账", "出借", "借给", "交付")),
    ("deadline", ("期限", "到期", "届满")),
)

DATE_LABEL_TYPES = {
    "立案": "filing",
    "受理": "filing",
    "起诉": "filing",
    "开庭": "hearing",
    "判决": "judgment",
    "宣判": "judgment",
    "裁定": "judgment",
    "签订": "contract",
    "付款": "payment",
    "还款": "payment",
}

DATE_TYPE_DESCRIPTIONS = {
    "filing": "立案日期",
    "hearing": "开庭日期",
    "judgment": "判决日期",
    "contract": "合同签订",
    "payment": "付款日期",
    "deadline": "期限届满",
    "incident": "事件发生",
}

_CRITICAL_DATE_TYPES = {"filing", "hearing", "judgment", "deadline"}
_IMPORTANT_DATE_TYPES = {"contract", "payment"}


def date_importance(date_type: str) -> str:
    if date_type in _CRITICAL_DATE_TYPES:
        return "critical"
    if date_type in _IMPORTANT_DATE_TYPES:
        return "important"
    return "reference"


def classify_date_type(context: str) -> str:
    """Classify a date by the keywords of the sentence it appears in."""
    return _first_keyword(context, DATE_TYPE_KEYWORDS, "incident")


def _date_candidate(iso: str, date_type: str, span: tuple[int, int]) -> Candidate:
    return Candidate(
        value=DateValue(date=iso, type=date_type, importance=date_importance(date_type)),
        description=DATE_TYPE_DESCRIPTIONS[date_type],
        span=span,
    )


def _normalize_labelled_date(match: re.Match, text: str) -> list[Candidate]:
    iso = to_iso_date(match.group("y"), match.group("m"), match.group("d"))
    if iso is None:
        return []
    return [_date_candidate(iso, DATE_LABEL_TYPES[match.group("label")], match.span())]


def _normalize_numeric_date(match: re.Match, text: str) -> list[Candidate]:
    iso = to_iso_date(match.group("y"), match.group("m"), match.group("d"))
    if iso is None:
        return []
    context = sentence_around(text, match.start(), match.end())
    return [_date_candidate(iso, classify_date_type(context), match.span())]


def _normalize_chinese_date(match: re.Match, text: str) -> list[Candidate]:
    iso = to_iso_date(
        cn_to_int(match.group("y")),
        cn_to_int(match.group("m")),
        cn_to_int(match.group("d")),
    )
    if iso is None:
        return []
    context = sentence_around(text, match.start(), match.end())
    return [_date_candidate(iso, classify_date_type(context), match.span())]


def _add_period(anchor: date, amount: int, unit: str) -> date:
    if unit in ("日", "天"):
        return anchor + timedelta(days=amount)
    months = amount * 12 if unit == "年" else amount
    year, month = divmod(anchor.month - 1 + months, 12)
    year += anchor.year
    month += 1
    day = min(anchor.day, monthrange(year, month)[1])
    return date(year, month, day)


def _normalize_deadline(match: re.Match, text: str) -> list[Candidate]:
    iso = to_iso_date(match.group("y"), match.group("m"), match.group("d"))
    if iso is None:
        return []
    anchor = date.fromisoformat(iso)
    amount = cn_to_int(match.group("n"))
    unit = match.group("unit").replace("个", "")
    try:
        due = _add_period(anchor, amount, unit)
    except (ValueError, OverflowError):
        # Period runs past the calendar
        return []
    return [
        Candidate(
            value=DateValue(date=due.isoformat(), type="deadline", importance="critical"),
            description=f"期限届满：自{iso}起{match.group('n')}{match.group('unit')}内",
            span=_body_span(match),
        )
    ]


_Y = r"(?P<y>\d{4})"
_M = r"(?P<m>\d{1,2})"
_D = r"(?P<d>\d{1,2})"
_CN_Y = r"(?P<y>[〇零○Ｏ一二三四五六七八九]{4})"
_CN_MD = "[一二三四五六七八九十]{1,3}"


# =============================================================================
# Parties
# =============================================================================

_COMPANY_NAME = (
    r"[一-龥（）()]{2,40}?"
    r"(?:有限责任公司|股份有限公司|有限公司|集团公司|公司)"
)
_PERSON_NAME = r"[一-龥·]{2,4}?"
_NAME_BOUNDARY = (
    r"(?=[，,。；;、：:\s（(]|$|诉|与|于|向|要求|请求|称|及|和|的|系|为|在|已|未"
    r"|归还|返还|支付|偿还|承担|赔偿|给付|交付|履行|签订|借|欠)"
)

# Words that follow a party marker but are not names
_NOT_NAME_PREFIXES = (
    "人", "辩", "诉", "要求", "请求", "请", "向", "于", "对", "与", "及", "和",
    "在", "为", "已", "未", "不", "的", "之", "认", "提", "主张", "所", "均",
    "应", "称", "方", "返还", "归还", "支付", "偿还", "承担", "赔偿", "给付",
    "交付", "履行", "签订", "拖欠", "违约",
)
_NOT_NAMES = {"本院", "双方", "上述", "该公司", "公司", "代理", "委托"}

# Further names listed after a marker: 原告张三、王五
_CO_PARTY_PATTERN = re.compile(
    rf"、(?P<name>{_COMPANY_NAME}|{_PERSON_NAME}){_NAME_BOUNDARY}"
)

_LEADING_FUNCTION_WORDS = re.compile(
    r"^(?:与|和|及|向|对|由|将|从|在|于|同|跟|系|是|为|因|被告|原告|第三人|委托|即|经)+"
)

_LEGAL_REP_PATTERN = re.compile(
    r"法定代表人[：:]?\s*(?P<rep>[一-龥·]{2,4}?)(?=[，,。；;、\s（(]|$)"
)


def _looks_like_name(name: str) -> bool:
    return (
        len(name) >= 2
        and not name.startswith(_NOT_NAME_PREFIXES)
        and name not in _NOT_NAMES
    )


def _find_legal_representative(text: str, end: int) -> str | None:
    """Find a legal representative declared right after a party."""
    window = text[end:end + 80]
    for marker in ("原告", "被告", "第三人"):
        cut = window.find(marker)
        if cut != -1:
            window = window[:cut]
    match = _LEGAL_REP_PATTERN.search(window)
    return match.group("rep") if match else None


def _marker_normalizer(role: str, label: str) -> Normalizer:
    def candidate(name_match: re.Match, text: str) -> Candidate | None:
        name = name_match.group("name").strip()
        if not _looks_like_name(name):
            return None
        representative = None
        if name.endswith("公司"):
            representative = _find_legal_representative(text, name_match.end())
        return Candidate(
            value=PartyValue(name=name, role=role, legal_representative=representative),
            description=label,
            span=name_match.span("name"),
        )

    def normalize(match: re.Match, text: str) -> list[Candidate]:
        first = candidate(match, text)
        if first is None:
            return []
        candidates = [first]
        position = match.end("name")
        while True:
            follow = _CO_PARTY_PATTERN.match(text, position)
            if follow is None:
                break
            extra = candidate(follow, text)
            if extra is None:
                break
            candidates.append(extra)
            position = follow.end("name")
        return candidates

    return normalize


def _normalize_company(match: re.Match, text: str) -> list[Candidate]:
    raw = match.group("name")
    name = _LEADING_FUNCTION_WORDS.sub("", raw)
    if len(name) <= len("有限公司") or not _looks_like_name(name):
        return []
    start = match.start("name") + (len(raw) - len(name))
    preceding = text[max(0, start - 8):start]
    if "原告" in preceding:
        role, label = "plaintiff", "原告（公司）"
    elif "被告" in preceding:
        role, label = "defendant", "被告（公司）"
    elif "第三人" in preceding:
        role, label = "third-party", "第三人（公司）"
    else:
        role, label = "third-party", "相关公司"
    return [
        Candidate(
            value=PartyValue(
                name=name,
                role=role,
                legal_representative=_find_legal_representative(text, match.end()),
            ),
            description=label,
            span=(start, match.end("name")),
        )
    ]


def _normalize_law_firm(match: re.Match, text: str) -> list[Candidate]:
    raw = match.group("name")
    name = _LEADING_FUNCTION_WORDS.sub("", raw)
    if len(name) <= len("律师事务所"):
        return []
    start = match.start("name") + (len(raw) - len(name))
    return [
        Candidate(
            value=PartyValue(name=name, role="agent"),
            description="律师事务所",
            span=(start, match.end("name")),
        )
    ]


# =============================================================================
# Amounts
# =============================================================================

_NUMBER = r"(?P<num>\d+(?:[,，]\d{3})*(?:\.\d+)?)"
_UNIT = r"(?P<unit>亿元|万元|万美元|万欧元|美元|欧元|元)"

AMOUNT_LABEL_PURPOSES = {
    "本金": "principal",
    "借款": "principal",
    "货款": "principal",
    "租金": "principal",
    "工资": "principal",
    "利息": "interest",
    "违约金": "penalty",
    "赔偿金": "compensation",
    "赔偿款": "compensation",
    "经济补偿金": "compensation",
    "补偿金": "compensation",
    "诉讼费": "fee",
    "案件受理费": "fee",
    "受理费": "fee",
    "保全费": "fee",
    "律师费": "fee",
    "保证金": "deposit",
    "押金": "deposit",
    "定金": "deposit",
}

# Longest labels first so 经济补偿金 is not read as 补偿金
_AMOUNT_LABELS = "|".join(sorted(AMOUNT_LABEL_PURPOSES, key=len, reverse=True))

AMOUNT_PURPOSE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("principal", ("本金", "借款", "欠款", "货款")),
    ("interest", ("利息", "利率")),
    ("penalty", ("违约金",)),
    ("compensation", ("赔偿", "补偿")),
    ("fee", ("诉讼费", "受理费", "律师费", "保全费", "费用")),
    ("deposit", ("押金", "保证金", "定金")),
)

AMOUNT_PURPOSE_DESCRIPTIONS = {
    "principal": "本金",
    "interest": "利息",
    "penalty": "违约金",
    "compensation": "赔偿金",
    "fee": "费用",
    "deposit": "押金",
    "other": "金额",
}


def parse_amount(number: str, unit: str) -> tuple[Decimal, str] | None:
    """Parse a numeric amount and its unit into ``(value, currency)``."""
    cleaned = number.replace(",", "").replace("，", "")
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    if "亿" in unit:
        value *= 100_000_000
    elif "万" in unit:
        value *= 10_000
    if "美元" in unit:
        currency = "USD"
    elif "欧元" in unit:
        currency = "EUR"
    else:
        currency = "CNY"
    return value, currency


def _amount_candidate(
    value: Decimal, currency: str, purpose: str, raw: str, span: tuple[int, int]
) -> Candidate:
    return Candidate(
        value=AmountValue(value=value, currency=currency, purpose=purpose),
        description=f"{AMOUNT_PURPOSE_DESCRIPTIONS[purpose]}：{raw}",
        span=span,
    )


def _normalize_labelled_amount(match: re.Match, text: str) -> list[Candidate]:
    parsed = parse_amount(match.group("num"), match.group("unit"))
    if parsed is None or parsed[0] <= 0:
        return []
    purpose = AMOUNT_LABEL_PURPOSES[match.group("label")]
    return [_amount_candidate(parsed[0], parsed[1], purpose, match.group(0), match.span())]


def _normalize_numeric_amount(match: re.Match, text: str) -> list[Candidate]:
    parsed = parse_amount(match.group("num"), match.group("unit"))
    if parsed is None or parsed[0] <= 0:
        return []
    context = sentence_around(text, match.start(), match.end())
    purpose = _first_keyword(context, AMOUNT_PURPOSE_KEYWORDS, "other")
    return [_amount_candidate(parsed[0], parsed[1], purpose, match.group(0), match.span())]


def _normalize_chinese_amount(match: re.Match, text: str) -> list[Candidate]:
    value = cn_to_int(match.group("num"))
    if value <= 0:
        return []
    context = sentence_around(text, match.start(), match.end())
    purpose = _first_keyword(context, AMOUNT_PURPOSE_KEYWORDS, "other")
    return [_amount_candidate(Decimal(value), "CNY", purpose, match.group(0), match.span())]


# =============================================================================
# Legal clauses
# =============================================================================

NORMATIVE_SUFFIXES = ("法典", "法律", "法", "条例", "规定", "解释", "决定", "办法", "规则", "纪要")

_ARTICLE_NUM = rf"[{CN_NUMERALS}\d]+"
_ARTICLE = (
    rf"第{_ARTICLE_NUM}条(?:之{_ARTICLE_NUM})?"
    rf"(?:第{_ARTICLE_NUM}款)?(?:第{_ARTICLE_NUM}项)?"
)
_ARTICLE_PARTS = re.compile(
    rf"第(?P<art>{_ARTICLE_NUM})条(?:之(?P<sub>{_ARTICLE_NUM}))?"
    rf"(?:第(?P<para>{_ARTICLE_NUM})款)?(?:第(?P<item>{_ARTICLE_NUM})项)?"
)


def normalize_article(raw: str) -> str | None:
    """Normalize ``第六百六十七条第一款`` to ``第667条第1款``."""
    match = _ARTICLE_PARTS.search(raw)
    if not match:
        return None
    article = f"第{cn_to_int(match.group('art'))}条"
    if match.group("sub"):
        article += f"之{cn_to_int(match.group('sub'))}"
    if match.group("para"):
        article += f"第{cn_to_int(match.group('para'))}款"
    if match.group("item"):
        article += f"第{cn_to_int(match.group('item'))}项"
    return article


def classify_law_type(law: str) -> str:
    """Classify a cited source as statute, interpretation, regulation or contract."""
    if ("合同" in law or "协议" in law) and not law.endswith(("法", "法典")):
        return "contract"
    if "最高人民法院" in law or law.endswith(("解释", "批复")):
        return "judicial-interpretation"
    if law.endswith(("条例", "办法", "规定", "规则")):
        return "regulation"
    return "statute"


def _is_normative(law: str) -> bool:
    return law.endswith(NORMATIVE_SUFFIXES)


def _clause_candidate(law: str, article: str | None, span: tuple[int, int]) -> Candidate:
    law_type = classify_law_type(law)
    label = f"《{law}》{article or ''}"
    return Candidate(
        value=ClauseValue(law=law, article=article, law_type=law_type),
        description=label,
        span=span,
    )


def _normalize_statute_articles(match: re.Match, text: str) -> list[Candidate]:
    law = match.group("law").strip()
    if not _is_normative(law):
        return []
    candidates = []
    seen: set[str] = set()
    for part in _ARTICLE_PARTS.finditer(match.group("articles")):
        article = normalize_article(part.group(0))
        if article and article not in seen:
            seen.add(article)
            candidates.append(_clause_candidate(law, article, match.span()))
    return candidates


def _normalize_interpretation(match: re.Match, text: str) -> list[Candidate]:
    law = match.group("law")
    article = normalize_article(match.group("article")) if match.group("article") else None
    return [_clause_candidate(law, article, match.span())]


def _normalize_contract_article(match: re.Match, text: str) -> list[Candidate]:
    article = normalize_article(match.group("article"))
    return [
        Candidate(
            value=ClauseValue(law=match.group("law"), article=article, law_type="contract"),
            description=f"合同条款：{match.group(0)}",
            span=match.span(),
        )
    ]


def _normalize_statute(match: re.Match, text: str) -> list[Candidate]:
    law = match.group("law").strip()
    if not _is_normative(law):
        return []
    return [_clause_candidate(law, None, match.span())]


# =============================================================================
# Facts
# =============================================================================

FACT_SIGNIFICANCE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("违约事实", ("违约",)),
    ("损害结果", ("损害", "损失")),
    ("主观过错", ("过错", "故意")),
    ("因果关系", ("因果",)),
    ("证据事实", ("证据", "证明")),
    ("合同事实", ("合同", "约定")),
)

MAX_FACT_CHARS = 300


def _fact_normalizer(stance: str, party: str | None, significance: str | None) -> Normalizer:
    def normalize(match: re.Match, text: str) -> list[Candidate]:
        content = match.group("body").strip(" ：:，,。\t")
        if len(content) < 4:
            return []
        content = content[:MAX_FACT_CHARS]
        meaning = significance or _first_keyword(
            content, FACT_SIGNIFICANCE_KEYWORDS, "相关事实"
        )
        return [
            Candidate(
                value=FactValue(
                    content=content, stance=stance, party=party, significance=meaning
                ),
                description=meaning,
                span=_body_span(match),
            )
        ]

    return normalize


# =============================================================================
# The rule table
# =============================================================================

PATTERN_RULES: tuple[PatternRule, ...] = (
    # ---- dates ----
    PatternRule(
        name="date.labelled",
        category=ElementCategory.DATE,
        pattern=re.compile(
            rf"(?P<label>{'|'.join(DATE_LABEL_TYPES)})日期[为是：:\s]*"
            rf"{_Y}[年\-./]{_M}[月\-./]{_D}日?"
        ),
        confidence=0.95,
        normalizer=_normalize_labelled_date,
    ),
    PatternRule(
        name="date.deadline_from_anchor",
        category=ElementCategory.DATE,
        pattern=re.compile(
            rf"{_Y}年{_M}月{_D}日(?:之日)?起"
            rf"(?P<body>(?P<n>[\d{CN_NUMERALS}]+)(?P<unit>日|天|个月|月|年)(?:内|之内|以内))"
        ),
        confidence=0.6,
        normalizer=_normalize_deadline,
    ),
    PatternRule(
        name="date.cn_standard",
        category=ElementCategory.DATE,
        pattern=re.compile(rf"{_Y}年{_M}月{_D}日"),
        confidence=0.9,
        normalizer=_normalize_numeric_date,
    ),
    PatternRule(
        name="date.iso",
        category=ElementCategory.DATE,
        pattern=re.compile(rf"(?<![\d\-]){_Y}-{_M}-{_D}(?![\d\-])"),
        confidence=0.85,
        normalizer=_normalize_numeric_date,
    ),
    PatternRule(
        name="date.dotted",
        category=ElementCategory.DATE,
        pattern=re.compile(rf"(?<![\d.]){_Y}\.{_M}\.{_D}(?![\d.])"),
        confidence=0.8,
        normalizer=_normalize_numeric_date,
    ),
    PatternRule(
        name="date.slashed",
        category=ElementCategory.DATE,
        pattern=re.compile(rf"(?<![\d/]){_Y}/{_M}/{_D}(?![\d/])"),
        confidence=0.8,
        normalizer=_normalize_numeric_date,
    ),
    PatternRule(
        name="date.cn_numeral",
        category=ElementCategory.DATE,
        pattern=re.compile(rf"{_CN_Y}年(?P<m>{_CN_MD})月(?P<d>{_CN_MD})日"),
        confidence=0.75,
        normalizer=_normalize_chinese_date,
    ),
    # ---- parties ----
    PatternRule(
        name="party.plaintiff_marker",
        category=ElementCategory.PARTY,
        pattern=re.compile(
            rf"(?<!被)原告(?:人)?(?:[：:]\s*)?(?P<name>{_COMPANY_NAME}|{_PERSON_NAME}){_NAME_BOUNDARY}"
        ),
        confidence=0.95,
        normalizer=_marker_normalizer("plaintiff", "原告"),
    ),
    PatternRule(
        name="party.defendant_marker",
        category=ElementCategory.PARTY,
        pattern=re.compile(
            rf"被告(?!人)(?:[：:]\s*)?(?P<name>{_COMPANY_NAME}|{_PERSON_NAME}){_NAME_BOUNDARY}"
        ),
        confidence=0.95,
        normalizer=_marker_normalizer("defendant", "被告"),
    ),
    PatternRule(
        name="party.third_party_marker",
        category=ElementCategory.PARTY,
        pattern=re.compile(
            rf"第三人(?:[：:]\s*)?(?P<name>{_COMPANY_NAME}|{_PERSON_NAME}){_NAME_BOUNDARY}"
        ),
        confidence=0.9,
        normalizer=_marker_normalizer("third-party", "第三人"),
    ),
    PatternRule(
        name="party.company",
        category=ElementCategory.PARTY,
        pattern=re.compile(rf"(?P<name>{_COMPANY_NAME})"),
        confidence=0.85,
        normalizer=_normalize_company,
    ),
    PatternRule(
        name="party.law_firm",
        category=ElementCategory.PARTY,
        pattern=re.compile(r"(?P<name>[一-龥（）()]{2,30}?律师事务所)"),
        confidence=0.9,
        normalizer=_normalize_law_firm,
    ),
    # ---- amounts ----
    PatternRule(
        name="amount.labelled",
        category=ElementCategory.AMOUNT,
        pattern=re.compile(
            rf"(?P<label>{_AMOUNT_LABELS})(?:共计|合计|总计|人民币|为|是|计|共|：|:|\s)*"
            rf"{_NUMBER}\s*{_UNIT}"
        ),
        confidence=0.9,
        normalizer=_normalize_labelled_amount,
    ),
    PatternRule(
        name="amount.numeric",
        category=ElementCategory.AMOUNT,
        pattern=re.compile(rf"(?<![\d.,，]){_NUMBER}\s*{_UNIT}"),
        confidence=0.85,
        normalizer=_normalize_numeric_amount,
    ),
    PatternRule(
        name="amount.cn_numeral",
        category=ElementCategory.AMOUNT,
        pattern=re.compile(
            r"(?P<num>[零〇一二三四五六七八九十百千万亿壹贰叁肆伍陆柒捌玖拾佰仟萬億两]{2,})(?:元|圆)"
        ),
        confidence=0.7,
        normalizer=_normalize_chinese_amount,
    ),
    # ---- legal clauses ----
    PatternRule(
        name="clause.statute_article",
        category=ElementCategory.CLAUSE,
        pattern=re.compile(
            rf"《(?P<law>[^《》\n]{{1,60}})》\s*"
            rf"(?P<articles>{_ARTICLE}(?:\s*[、，,和及]\s*{_ARTICLE})*)"
        ),
        confidence=0.9,
        normalizer=_normalize_statute_articles,
    ),
    PatternRule(
        name="clause.judicial_interpretation",
        category=ElementCategory.CLAUSE,
        pattern=re.compile(
            r"(?P<law>最高人民法院关于[一-龥（）()]{2,60}?的(?:解释|规定|批复)(?:（[一二三四五六七八九十]+）)?)"
            rf"(?P<article>{_ARTICLE})?"
        ),
        confidence=0.85,
        normalizer=_normalize_interpretation,
    ),
    PatternRule(
        name="clause.contract_article",
        category=ElementCategory.CLAUSE,
        pattern=re.compile(
            r"(?:根据|依据|按照)(?:双方)?(?:签订的)?(?P<law>借款合同|借款协议|合同|协议)"
            rf"(?P<article>{_ARTICLE})"
        ),
        confidence=0.8,
        normalizer=_normalize_contract_article,
    ),
    PatternRule(
        name="clause.statute",
        category=ElementCategory.CLAUSE,
        pattern=re.compile(r"《(?P<law>[^《》\n]{1,60})》"),
        confidence=0.7,
        normalizer=_normalize_statute,
    ),
    # ---- facts ----
    PatternRule(
        name="fact.litigation_claim",
        category=ElementCategory.FACT,
        pattern=re.compile(
            r"诉讼请求[：:]?(?P<body>[^\n]{4,400}?)(?=事实[与和]理由|\n|$)"
        ),
        confidence=0.9,
        normalizer=_fact_normalizer("claimed", "原告", "诉讼请求"),
    ),
    PatternRule(
        name="fact.court_finding",
        category=ElementCategory.FACT,
        pattern=re.compile(
            r"(?:本院)?(?:经审理)?查明[：:，,]?(?P<body>[^\n]{4,400}?)(?=本院认为|\n|$)"
        ),
        confidence=0.85,
        normalizer=_fact_normalizer("proven", "法院", None),
    ),
    PatternRule(
        name="fact.plaintiff_statement",
        category=ElementCategory.FACT,
        pattern=re.compile(
            r"原告[^，。\n]{0,10}?诉称[：:，,]?(?P<body>[^\n]{4,400}?)(?=被告[^，。\n]{0,10}?辩称|\n|$)"
        ),
        confidence=0.75,
        normalizer=_fact_normalizer("claimed", "原告", None),
    ),
    PatternRule(
        name="fact.defendant_statement",
        category=ElementCategory.FACT,
        pattern=re.compile(
            r"被告[^，。\n]{0,10}?辩称[：:，,]?(?P<body>[^\n]{4,400}?)(?=本院|\n|$)"
        ),
        confidence=0.75,
        normalizer=_fact_normalizer("disputed", "被告", None),
    ),
    PatternRule(
        name="fact.dispute_marker",
        category=ElementCategory.FACT,
        pattern=re.compile(r"争议(?:事实|焦点)[：:](?P<body>[^。\n]{2,200})"),
        confidence=0.7,
        normalizer=_fact_normalizer("disputed", None, None),
    ),
    PatternRule(
        name="fact.agreed",
        category=ElementCategory.FACT,
        pattern=re.compile(
            r"(?:^|(?<=[。；\n]))"
            r"(?P<body>[^。；\n]{0,200}?双方[^。；\n]{0,200}?(?:确认|认可|均无异议|无争议)[^。；\n]{0,200})",
            re.MULTILINE,
        ),
        confidence=0.7,
        normalizer=_fact_normalizer("agreed", None, None),
    ),
)


# =============================================================================
# Classification tables
# =============================================================================

# A case type matches when every keyword group has at least one hit.
# Order is policy: the first matching case type wins.
CASE_TYPE_RULES: tuple[tuple[str, tuple[tuple[str, ...], ...]], ...] = (
    (
        "民间借贷纠纷",
        (
            ("借款", "借贷", "欠款", "出借"),
            ("本金", "利息", "还款", "归还", "返还", "借条"),
        ),
    ),
    (
        "劳动争议",
        (
            ("工资", "劳动合同", "劳动关系", "用人单位"),
            ("补偿金", "加班费", "社保", "社会保险", "赔偿金", "拖欠", "解除"),
        ),
    ),
    (
        "合同纠纷",
        (
            ("合同", "协议"),
            ("违约", "履行", "解除", "违约金"),
        ),
    ),
    ("婚姻家庭纠纷", (("离婚", "抚养", "赡养", "夫妻共同财产"),)),
    (
        "侵权责任纠纷",
        (
            ("侵权", "人身损害", "交通事故", "医疗损害"),
            ("赔偿", "损失", "责任"),
        ),
    ),
    ("知识产权纠纷", (("专利", "商标", "著作权", "商业秘密"),)),
)

DEFAULT_CASE_TYPE = "民事纠纷"

DOCUMENT_TYPE_INDICATORS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("judgment", ("判决如下", "本院认为", "审理终结", "判决书")),
    ("complaint", ("诉讼请求", "起诉状", "原告诉称", "事实与理由")),
    ("contract", ("甲方", "乙方", "签订合同", "合同编号", "条款如下")),
    ("evidence", ("证据", "证明", "公证", "鉴定意见")),
)

COURT_PATTERN = re.compile(r"([一-龥]{2,30}?(?:最高|高级|中级|基层)?人民法院)")
CASE_NUMBER_PATTERN = re.compile(
    r"[（(]\d{4}[)）][一-龥]{1,4}\d{0,6}"
    r"(?:民初|民终|民申|民再|刑初|刑终|行初|行终|执|破)?第?\d{1,10}号"
)
JUDGMENT_DATE_PATTERN = re.compile(r"判决日期[：:]?\s*(\d{4})年(\d{1,2})月(\d{1,2})日")


def classify_case_type(text: str) -> str:
    """Classify case type by the first matching rule in declaration order."""
    for label, groups in CASE_TYPE_RULES:
        if all(any(keyword in text for keyword in group) for group in groups):
            return label
    return DEFAULT_CASE_TYPE


def classify_document_type(text: str) -> str:
    """Classify the document by the first matching indicator list."""
    return _first_keyword(text, DOCUMENT_TYPE_INDICATORS, "unknown")
