"""Names of the stored procedures exposed by the managed backend."""

UPDATE_USER_PROFILE = "atualizar_perfil_usuario"
COMPLETE_ONBOARDING = "completar_onboarding"

INVITE_MEMBER = "convidar_membro"
UPDATE_MEMBER_ROLE = "atualizar_role_membro"

CREATE_PATIENT = "criar_paciente"
UPDATE_PATIENT = "atualizar_paciente"
DELETE_PATIENT = "deletar_paciente"

CREATE_CONSULTATION = "criar_consulta"
UPDATE_CONSULTATION = "atualizar_consulta"
DELETE_CONSULTATION = "deletar_consulta"

CREATE_CHAT_MESSAGE = "criar_mensagem_chat"
