import yaml
import os
import logging

logger = logging.getLogger(__name__)


class PatternConfig:
    def __init__(self, filepath=None):
        current_dir = os.path.dirname(os.path.abspath(__file__))
        self.package_root = os.path.dirname(current_dir)

        self.filepath = filepath or os.path.join(self.package_root, "patterns.yaml")
        self._patterns = self._load_patterns()

    def _load_patterns(self):
        if not os.path.exists(self.filepath):
            logger.error(f"Pattern file NOT found at: {self.filepath}. Using built-in header heuristics.")
            return {}

        try:
            with open(self.filepath, 'r', encoding='utf-8') as file:
                data = yaml.safe_load(file) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to parse {self.filepath}: {e}")
            return {}

        count = len(data.get('header_rules', []))
        logger.debug(f"Loaded {count} header rules from {self.filepath}")
        return data

    def get_header_keywords(self):
        return self._patterns.get("header_keywords", [])

    def get_header_rules(self):
        return self._patterns.get("header_rules", [])

    def get_unit_tokens(self):
        return self._patterns.get("unit_tokens", [])


# Global instance
pattern_config = PatternConfig()
