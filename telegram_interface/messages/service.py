"""
Message Service

Централизованные тексты бота: templates/<locale>/<category>.json,
формат {"key": {"template": "...", "variables": [...]}}, рендер через Jinja2.
Переменные экранируются (autoescape), разметка шаблонов остаётся HTML.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from jinja2 import Environment, TemplateError

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "ru"


class MessageService:
    """Централизованный сервис сообщений"""

    def __init__(self, templates_dir: Optional[Path] = None):
        if templates_dir is None:
            templates_dir = Path(__file__).parent / "templates"

        self.templates_dir = Path(templates_dir)

        self.jinja_env = Environment(
            autoescape=True,
            trim_blocks=True,
            lstrip_blocks=True
        )

        # locale -> category -> key -> {"template", "variables"}
        self._templates_cache: Dict[str, Dict[str, Dict[str, Any]]] = {}

        self._load_all_templates()

        logger.info(f"MessageService initialized with templates from {self.templates_dir}")

    def _load_all_templates(self):
        """Загрузка всех шаблонов из файлов"""
        if not self.templates_dir.exists():
            logger.warning(f"Templates directory not found: {self.templates_dir}")
            return

        for locale_dir in sorted(self.templates_dir.iterdir()):
            if locale_dir.is_dir():
                self._load_locale_templates(locale_dir.name)

    def _load_locale_templates(self, locale: str):
        locale_path = self.templates_dir / locale
        self._templates_cache[locale] = {}

        for json_file in sorted(locale_path.glob("*.json")):
            try:
                with json_file.open("r", encoding="utf-8") as f:
                    self._templates_cache[locale][json_file.stem] = json.load(f)
                logger.debug(f"Loaded templates for {locale}/{json_file.stem}")
            except (json.JSONDecodeError, IOError) as e:
                logger.error(f"Failed to load {json_file}: {e}")

    def get_message(self, key: str, locale: str = DEFAULT_LOCALE,
                    category: str = "consultation", **kwargs) -> str:
        """Получить сообщение с подстановкой переменных"""
        template_data = self._get_template_data(key, locale, category)
        if not template_data:
            logger.error(f"Message template missing: {locale}.{category}.{key}")
            return f"[MISSING: {locale}.{category}.{key}]"

        template_str = template_data.get("template", "")
        if not template_str:
            return f"[EMPTY_TEMPLATE: {locale}.{category}.{key}]"

        try:
            rendered = self.jinja_env.from_string(template_str).render(**kwargs)
        except TemplateError as e:
            logger.error(f"Error rendering template {locale}.{category}.{key}: {e}")
            return f"[RENDER_ERROR: {key}]"

        return rendered.strip()

    def get_variables(self, key: str, locale: str = DEFAULT_LOCALE,
                      category: str = "consultation") -> List[str]:
        template_data = self._get_template_data(key, locale, category) or {}
        return list(template_data.get("variables", []))

    def _get_template_data(self, key: str, locale: str, category: str) -> Optional[Dict[str, Any]]:
        """Получить данные шаблона с fallback"""
        template_data = self._templates_cache.get(locale, {}).get(category, {}).get(key)
        if template_data:
            return template_data

        # Fallback на русский язык
        if locale != DEFAULT_LOCALE:
            template_data = self._templates_cache.get(DEFAULT_LOCALE, {}).get(category, {}).get(key)
            if template_data:
                logger.debug(f"Using fallback ru for {locale}.{category}.{key}")
                return template_data

        # Попытка найти в других категориях той же локали
        for cat_name, cat_data in self._templates_cache.get(locale, {}).items():
            if key in cat_data:
                logger.debug(f"Found {key} in category {cat_name} instead of {category}")
                return cat_data[key]

        return None
