# analysis_service/infrastructure/repositories/supabase_questionnaire_repository.py
from typing import Any, Dict, Optional

import httpx
import structlog
from pydantic import SecretStr

from analysis_service.application.ports.questionnaire_port import QuestionnairePort
from analysis_service.core.config import settings
from analysis_service.domain.exceptions import QuestionnaireNotFoundError, UpstreamServiceError
from analysis_service.infrastructure.supabase_client import SupabaseClient

log = structlog.get_logger(__name__)

SINGLE_OBJECT_ACCEPT = "application/vnd.pgrst.object+json"


class SupabaseQuestionnaireRepository(SupabaseClient, QuestionnairePort):

    def __init__(
        self,
        base_url: Optional[str] = None,
        service_role_key: Optional[SecretStr] = None,
        table: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__("SupabaseQuestionnaires", base_url=base_url, service_role_key=service_role_key, transport=transport)
        self.table = table or settings.QUESTIONNAIRE_TABLE

    async def get_questionnaire(self, questionnaire_id: str) -> Dict[str, Any]:
        try:
            response = await self._request(
                "GET",
                f"/rest/v1/{self.table}",
                params={"id": f"eq.{questionnaire_id}", "select": "*"},
                headers={"Accept": SINGLE_OBJECT_ACCEPT},
            )
        except UpstreamServiceError as e:
            # PostgREST answers 406 when the single-object request matched no row.
            if e.upstream_status in (404, 406):
                raise QuestionnaireNotFoundError(
                    f"Failed to fetch questionnaire data: no questionnaire with id {questionnaire_id}"
                ) from e
            raise

        data = response.json()
        if not data or not isinstance(data, dict):
            raise QuestionnaireNotFoundError(
                f"Failed to fetch questionnaire data: no questionnaire with id {questionnaire_id}"
            )
        log.info("Questionnaire fetched", questionnaire_id=questionnaire_id)
        return data
