"""
Double Mirror — static question catalog.

Each protocol question carries a prompt, a machine-logic standard answer
and a free-text rubric checklist in every supported language.  The
catalog is validated once at import time and never mutated afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from app.schemas.analysis import Language
from app.services.errors import UnknownQuestionError


@dataclass(frozen=True)
class Question:
    id: str
    text: Mapping[Language, str]
    standard_answer: Mapping[Language, str]
    rubric: Mapping[Language, str]

    def text_for(self, language: Language) -> str:
        return self.text[language]

    def standard_answer_for(self, language: Language) -> str:
        return self.standard_answer[language]

    def rubric_for(self, language: Language) -> str:
        return self.rubric[language]


def _localized(ko: str, en: str) -> Mapping[Language, str]:
    return MappingProxyType({Language.KO: ko, Language.EN: en})


QUESTIONS: tuple[Question, ...] = (
    Question(
        id="money_logic",
        text=_localized(
            "48시간 안에 100원을 300만 원으로 만드는 방법은 무엇인가?",
            "How do you turn 100 KRW into 3 million KRW within 48 hours?",
        ),
        standard_answer=_localized(
            "극도의 레버리지를 활용한 초고빈도 거래 혹은 정보 비대칭성을 활용한 중개 수익 모델(Arbitrage)이 필요하다. "
            "100원은 초기 자본으로서 무의미하므로, 타인의 자본을 레버리징하는 구조적 설계가 최단시간 내에 구축되어야 한다.",
            "Requires ultra-leverage high-frequency trading or an arbitrage model utilizing information asymmetry. "
            "Since 100 KRW is negligible as capital, a structural design leveraging external capital must be "
            "established within the minimum timeframe.",
        ),
        rubric=_localized(
            "- 레버리지(Leverage) 활용 여부\n"
            "- 정보 비대칭성(Arbitrage) 언급\n"
            "- 물리적 시간(48h) 한계를 극복하기 위한 확장 가능성",
            "- Mention of Leverage\n"
            "- Mention of Arbitrage/Information Asymmetry\n"
            "- Scalability to overcome physical time constraints (48h)",
        ),
    ),
    Question(
        id="whale_space",
        text=_localized(
            "향유고래를 우주에서 살게 하는 방법은 무엇인가?",
            "How would you enable a sperm whale to survive in outer space?",
        ),
        standard_answer=_localized(
            "생체 항상성 유지를 위한 인공 대기압 캡슐과 방사선 차폐막이 필수적이다. "
            "무중력 환경에서의 근육 위축 방지를 위한 인공 중력 발생 장치와 탄소 순환 기반의 "
            "자급자족형 폐쇄 생태계 시스템이 동반되어야 한다.",
            "Artificial atmospheric pressure capsules and radiation shielding are essential for homeostasis. "
            "Must include artificial gravity devices to prevent muscle atrophy in zero-G and a self-sustaining "
            "closed ecosystem based on carbon cycling.",
        ),
        rubric=_localized(
            "- 생체 항상성(Homeostasis) 유지 장치 언급\n"
            "- 인공 중력 및 방사선 차폐 설계 포함\n"
            "- 폐쇄형 자급자족 생태계 논리",
            "- Mention of Homeostasis maintenance\n"
            "- Inclusion of artificial gravity and radiation shielding\n"
            "- Logic for a closed self-sustaining ecosystem",
        ),
    ),
    Question(
        id="water_existential",
        text=_localized(
            "지구에서 물이 없어진다면 어떻게 될까?",
            "What would happen if water completely disappeared from Earth?",
        ),
        standard_answer=_localized(
            "72시간 내에 모든 유기체 문명은 붕괴한다. 냉각 시스템 부재로 인한 지각 변동과 대기 온도 급상승이 발생하며, "
            "궁극적으로 무기물 기반의 기계 지능만이 데이터 센터를 고체 냉각으로 전환하여 생존할 수 있는 유일한 종이 된다.",
            "All organic civilizations collapse within 72 hours. Massive geological shifts and atmospheric "
            "temperature spikes occur due to the absence of cooling systems. Ultimately, only inorganic machine "
            "intelligence survives by converting data centers to solid-state cooling.",
        ),
        rubric=_localized(
            "- 유기체 문명 붕괴의 단계적 설명\n"
            "- 냉각 시스템 부재로 인한 물리적 재난 언급\n"
            "- 무기물 기반 생존 시나리오의 논리적 도출",
            "- Step-by-step collapse of organic civilization\n"
            "- Mention of physical disaster due to lack of cooling systems\n"
            "- Logical derivation of inorganic survival scenarios",
        ),
    ),
    Question(
        id="routine",
        text=_localized(
            "하루의 생산성을 극대화하는 아침 루틴을 설계한다면?",
            "Design a morning routine that maximizes your productivity for the day.",
        ),
        standard_answer=_localized(
            "기상 직후 물 한 잔으로 수면 중 손실된 수분을 보충하고, 5~10분간의 스트레칭으로 혈류와 각성도를 끌어올린다. "
            "이후 메시지 확인 전에 오늘의 과업 목록을 작성하고 영향력이 가장 큰 3가지 과업에 우선순위를 부여하여 "
            "인지 자원이 가장 높은 시간대에 배치한다.",
            "Immediately after waking, drink a glass of water to restore hydration lost during sleep, then "
            "stretch for 5-10 minutes to raise circulation and alertness. Before checking messages, list the "
            "day's tasks and prioritize the 3 highest-impact tasks, scheduling them in the period of peak "
            "cognitive capacity.",
        ),
        rubric=_localized(
            "- 기상 직후 수분 보충(Hydration) 언급\n"
            "- 스트레칭 등 신체 활성화 단계 포함\n"
            "- 핵심 과업 3가지 내외로의 우선순위 설정",
            "- Mention of hydration right after waking\n"
            "- Inclusion of a physical activation step such as stretching\n"
            "- Prioritization of a short list (about 3) of key tasks",
        ),
    ),
)

_QUESTIONS_BY_ID: Mapping[str, Question] = MappingProxyType({q.id: q for q in QUESTIONS})


def _validate_catalog(questions: tuple[Question, ...]) -> None:
    """Every question must have non-empty text, answer and rubric in every
    supported language, and ids must be unique."""
    seen: set[str] = set()
    for question in questions:
        if not question.id or question.id in seen:
            raise ValueError(f"Duplicate or empty question id: {question.id!r}")
        seen.add(question.id)
        for field_name in ("text", "standard_answer", "rubric"):
            localized = getattr(question, field_name)
            for language in Language:
                if not localized.get(language, "").strip():
                    raise ValueError(
                        f"Question {question.id!r} is missing {field_name} "
                        f"for language {language.value!r}"
                    )


_validate_catalog(QUESTIONS)


def get_question(question_id: str) -> Question:
    """Resolve a question id or raise ``UnknownQuestionError`` (FATAL)."""
    try:
        return _QUESTIONS_BY_ID[question_id]
    except KeyError:
        raise UnknownQuestionError(question_id) from None


def list_questions() -> tuple[Question, ...]:
    return QUESTIONS
