"""
Prompt templates (Jinja2)

Все ответы модели должны быть на русском и в виде JSON-объекта.
"""

from typing import Sequence

from jinja2 import Environment, StrictUndefined

from ..models import DialogueTurn, PersonaDescriptor

_env = Environment(
    autoescape=False,
    trim_blocks=True,
    lstrip_blocks=True,
    undefined=StrictUndefined,
)

SYSTEM_PROMPT = (
    "Ты фасилитатор личного совета директоров. "
    "Отвечай ТОЛЬКО валидным JSON-объектом без дополнительного текста. "
    "Все тексты внутри JSON пиши на русском языке."
)

CATALOG_TEMPLATE = _env.from_string("""\
Ты эксперт по составлению личных советов директоров. СОЗДАЙ {{ count }} советников,
которые будут наиболее полезны пользователю в его конкретной ситуации.

СИТУАЦИЯ ПОЛЬЗОВАТЕЛЯ:
"{{ situation }}"

ИНСТРУКЦИИ:
1. Глубоко проанализируй ситуацию.
2. Выбери реальных исторических или современных людей с разными областями,
   стилями мышления и взглядами.
3. Для КАЖДОГО советника укажи:
   - id: имя латиницей в нижнем регистре без пробелов (например, "elonmusk")
   - name: полное имя
   - description: 3-5 слов, почему он полезен именно в этой ситуации
   - style: как он думает и общается
   - principles: ключевые принципы и философия
   - tone: каким тоном он обычно советует

Верни ровно {{ count }} советников в формате:
{"advisors": [{"id": "...", "name": "...", "description": "...", "style": "...", "principles": "...", "tone": "..."}]}
""")

POOL_TEMPLATE = _env.from_string("""\
Выбери {{ count }} советников из списка ниже, которые лучше всего подходят
для ситуации пользователя.

СИТУАЦИЯ ПОЛЬЗОВАТЕЛЯ:
"{{ situation }}"

ДОСТУПНЫЕ СОВЕТНИКИ:
{% for persona in pool %}
- {{ persona.id }}: {{ persona.name }} ({{ persona.short_description }})
{% endfor %}

Используй только id из списка. Верни ровно {{ count }} разных id в формате:
{"advisor_ids": ["...", "..."]}
""")

PANEL_TEMPLATE = _env.from_string("""\
Ты фасилитатор личного совета директоров. Дай совет от лица каждого
выбранного советника, опираясь на его известную философию, а затем
сведи их советы в общий план действий.

СИТУАЦИЯ ПОЛЬЗОВАТЕЛЯ:
{{ situation }}

СОВЕТНИКИ:
{% for persona in personas %}
- id: {{ persona.id }}
  Имя: {{ persona.name }}
{% if persona.style %}
  Стиль: {{ persona.style }}
{% endif %}
{% if persona.principles %}
  Принципы: {{ persona.principles }}
{% endif %}
{% if persona.tone %}
  Тон: {{ persona.tone }}
{% endif %}
{% endfor %}

Для каждого советника верни его id без изменений. В synthesis выдели, в чём
советники согласны и в чём расходятся, и сделай план конкретным.

Формат ответа:
{"advice": [{"advisor_id": "...", "advisor_name": "...", "advice": "..."}], "synthesis": "..."}
""")

DIALOGUE_TEMPLATE = _env.from_string("""\
Пользователь задаёт уточняющий вопрос своему совету директоров.

СОВЕТНИКИ:
{% for persona in personas %}
- {{ persona.name }}
{% endfor %}

ИСТОРИЯ РАЗГОВОРА:
{% for turn in history %}
- {{ turn.role.value }}: {{ turn.text }}
{% endfor %}

НОВЫЙ ВОПРОС: {{ question }}

ИНСТРУКЦИИ:
1. Если в вопросе упомянут конкретный советник, отвечай ТОЛЬКО от его лица
   в его стиле и начни ответ с его имени (например, "Имя: ...").
2. Если никто не упомянут, ответь как фасилитатор.
3. Отвечай кратко и по существу.

Формат ответа:
{"answer": "..."}
""")


def render_catalog_prompt(situation: str, count: int) -> str:
    return CATALOG_TEMPLATE.render(situation=situation, count=count)


def render_pool_prompt(situation: str, pool: Sequence[PersonaDescriptor], count: int) -> str:
    return POOL_TEMPLATE.render(situation=situation, pool=pool, count=count)


def render_panel_prompt(situation: str, personas: Sequence[PersonaDescriptor]) -> str:
    return PANEL_TEMPLATE.render(situation=situation, personas=personas)


def render_dialogue_prompt(history: Sequence[DialogueTurn], question: str,
                           personas: Sequence[PersonaDescriptor]) -> str:
    return DIALOGUE_TEMPLATE.render(history=history, question=question, personas=personas)
