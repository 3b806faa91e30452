"""Legal provision mapping.

A small built-in catalogue of frequently cited articles and a mapping from
case type to the provisions most relevant to it.
"""

import logging

from .deterministic import normalize_text
from .models import ClauseValue, LegalProvision

logger = logging.getLogger(__name__)


def _provision(code: str, title: str, article: str, content: str, tags: list[str]) -> dict:
    return {"code": code, "title": title, "article": article, "content": content, "tags": tags}


PROVISION_CATALOGUE: dict[str, dict] = {
    p["code"]: p
    for p in (
        # 民法典: contracts
        _provision(
            "CC-509", "民法典", "第509条",
            "当事人应当按照约定全面履行自己的义务。",
            ["合同", "履行"],
        ),
        _provision(
            "CC-577", "民法典", "第577条",
            "当事人一方不履行合同义务或者履行合同义务不符合约定的，应当承担继续履行、"
            "采取补救措施或者赔偿损失等违约责任。",
            ["合同", "违约责任"],
        ),
        _provision(
            "CC-585", "民法典", "第585条",
            "当事人可以约定一方违约时应当根据违约情况向对方支付一定数额的违约金，"
            "也可以约定因违约产生的损失赔偿额的计算方法。",
            ["合同", "违约金"],
        ),
        # 民法典: loans
        _provision(
            "CC-667", "民法典", "第667条",
            "借款合同是借款人向贷款人借款，到期返还借款并支付利息的合同。",
            ["借款", "定义"],
        ),
        _provision(
            "CC-675", "民法典", "第675条",
            "借款人应当按照约定的期限返还借款。",
            ["借款", "还款期限"],
        ),
        _provision(
            "CC-676", "民法典", "第676条",
            "借款人未按照约定的期限返还借款的，应当按照约定或者国家有关规定支付逾期利息。",
            ["借款", "逾期利息"],
        ),
        _provision(
            "CC-679", "民法典", "第679条",
            "自然人之间的借款合同，自贷款人提供借款时成立。",
            ["借款", "自然人借贷"],
        ),
        _provision(
            "CC-680", "民法典", "第680条",
            "禁止高利放贷，借款的利率不得违反国家有关规定。",
            ["借款", "利率"],
        ),
        # 民法典: torts
        _provision(
            "CC-1165", "民法典", "第1165条",
            "行为人因过错侵害他人民事权益造成损害的，应当承担侵权责任。",
            ["侵权", "过错责任"],
        ),
        _provision(
            "CC-1179", "民法典", "第1179条",
            "侵害他人造成人身损害的，应当赔偿医疗费、护理费、交通费、营养费、"
            "住院伙食补助费等为治疗和康复支出的合理费用，以及因误工减少的收入。",
            ["侵权", "人身损害"],
        ),
        # 民法典: marriage and family
        _provision(
            "CC-1079", "民法典", "第1079条",
            "夫妻一方要求离婚的，可以由有关组织进行调解或者直接向人民法院提起离婚诉讼。",
            ["婚姻", "离婚"],
        ),
        _provision(
            "CC-1087", "民法典", "第1087条",
            "离婚时，夫妻的共同财产由双方协议处理；协议不成的，由人民法院根据财产的具体情况，"
            "按照照顾子女、女方和无过错方权益的原则判决。",
            ["婚姻", "财产分割"],
        ),
        # 民法典: intellectual property
        _provision(
            "CC-123", "民法典", "第123条",
            "民事主体依法享有知识产权。",
            ["知识产权"],
        ),
        # 劳动合同法
        _provision(
            "LCL-30", "劳动合同法", "第30条",
            "用人单位应当按照劳动合同约定和国家规定，向劳动者及时足额支付劳动报酬。",
            ["劳动", "工资"],
        ),
        _provision(
            "LCL-38", "劳动合同法", "第38条",
            "用人单位未及时足额支付劳动报酬的，劳动者可以解除劳动合同。",
            ["劳动", "解除"],
        ),
        _provision(
            "LCL-46", "劳动合同法", "第46条",
            "劳动者依照本法第三十八条规定解除劳动合同的，用人单位应当向劳动者支付经济补偿。",
            ["劳动", "经济补偿"],
        ),
        _provision(
            "LCL-47", "劳动合同法", "第47条",
            "经济补偿按劳动者在本单位工作的年限，每满一年支付一个月工资的标准向劳动者支付。",
            ["劳动", "经济补偿"],
        ),
        # 民事诉讼法
        _provision(
            "CPL-67", "民事诉讼法", "第67条",
            "当事人对自己提出的主张，有责任提供证据。",
            ["程序", "举证责任"],
        ),
    )
}

# Case type -> (provision code, relevance), most relevant first
CASE_TYPE_PROVISIONS: dict[str, list[tuple[str, float]]] = {
    "民间借贷纠纷": [
        ("CC-667", 0.95),
        ("CC-675", 0.9),
        ("CC-676", 0.85),
        ("CC-679", 0.8),
        ("CC-680", 0.75),
        ("CPL-67", 0.6),
    ],
    "劳动争议": [
        ("LCL-30", 0.95),
        ("LCL-38", 0.85),
        ("LCL-46", 0.85),
        ("LCL-47", 0.8),
        ("CPL-67", 0.6),
    ],
    "合同纠纷": [
        ("CC-577", 0.95),
        ("CC-509", 0.9),
        ("CC-585", 0.8),
        ("CPL-67", 0.6),
    ],
    "婚姻家庭纠纷": [
        ("CC-1079", 0.9),
        ("CC-1087", 0.85),
        ("CPL-67", 0.6),
    ],
    "侵权责任纠纷": [
        ("CC-1165", 0.95),
        ("CC-1179", 0.85),
        ("CPL-67", 0.6),
    ],
    "知识产权纠纷": [
        ("CC-123", 0.85),
        ("CC-1165", 0.75),
        ("CPL-67", 0.6),
    ],
    "民事纠纷": [
        ("CC-509", 0.6),
        ("CPL-67", 0.6),
    ],
}

_CASE_TYPE_SUFFIXES = ("纠纷", "争议")


class ProvisionMapper:
    """Maps case types to catalogue provisions and builds reference lists."""

    def __init__(
        self,
        catalogue: dict[str, dict] | None = None,
        mapping: dict[str, list[tuple[str, float]]] | None = None,
    ):
        self.catalogue = catalogue if catalogue is not None else PROVISION_CATALOGUE
        self.mapping = mapping if mapping is not None else CASE_TYPE_PROVISIONS

    def provisions_for(self, case_type: str) -> list[LegalProvision]:
        """Get the provisions for a case type.

        Falls back to the first mapped case type sharing its stem
        (``借款合同纠纷`` -> ``合同纠纷``), then to an empty list.
        """
        entries = self.mapping.get(case_type)
        if entries is None:
            entries = self._fuzzy_entries(case_type)

        provisions = []
        for code, relevance in entries:
            data = self.catalogue.get(code)
            if data is None:
                logger.warning(f"Provision {code} missing from catalogue")
                continue
            provisions.append(LegalProvision(relevance=relevance, **data))
        return provisions

    def legal_references(
        self,
        case_type: str,
        clauses: list[ClauseValue] | None = None,
    ) -> list[str]:
        """Build de-duplicated ``《title》第N条`` references in stable order.

        Cited clauses come first, then the mapped provisions.
        """
        references: list[str] = []
        seen: set[str] = set()

        candidates = [clause.label for clause in clauses or [] if clause.law_type != "contract"]
        candidates += [
            f"《{provision.title}》{provision.article}"
            for provision in self.provisions_for(case_type)
        ]
        for reference in candidates:
            key = normalize_text(reference)
            if key and key not in seen:
                seen.add(key)
                references.append(reference)
        return references

    def _fuzzy_entries(self, case_type: str) -> list[tuple[str, float]]:
        for known, entries in self.mapping.items():
            stem = known
            for suffix in _CASE_TYPE_SUFFIXES:
                stem = stem.removesuffix(suffix)
            if stem and stem in case_type:
                logger.debug(f"Case type {case_type} mapped to {known}")
                return entries
        return []


# Singleton instance
_mapper: ProvisionMapper | None = None


def get_provision_mapper() -> ProvisionMapper:
    """Get the provision mapper singleton."""
    global _mapper
    if _mapper is None:
        _mapper = ProvisionMapper()
    return _mapper
