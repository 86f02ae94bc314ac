# analysis_service/application/ports/questionnaire_port.py
import abc
from typing import Any, Dict

class QuestionnairePort(abc.ABC):

    @abc.abstractmethod
    async def get_questionnaire(self, questionnaire_id: str) -> Dict[str, Any]:
        """
        Fetches one anonymous questionnaire record.

        Raises:
            QuestionnaireNotFoundError: If no record has this id.
        """
        raise NotImplementedError
