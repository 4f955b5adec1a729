"""Prompt construction and strict response formats for the oracle calls.

Three tasks share the same shape: system instructions, a user payload with
JSON embedded between ``BEGIN_*``/``END_*`` markers, and a strict JSON Schema
``text.format`` for the OpenAI Responses API.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

from openai.types.responses.response_format_text_json_schema_config_param import (
    ResponseFormatTextJSONSchemaConfigParam,
)

from .models import AuditFinding, CompanyContext, Transaction
from .taxonomy import Taxonomy

TX_BEGIN = "BEGIN_TRANSACTIONS_JSON\n"
TX_END = "\nEND_TRANSACTIONS_JSON"
FINDINGS_BEGIN = "BEGIN_FINDINGS_JSON\n"
FINDINGS_END = "\nEND_FINDINGS_JSON"
STATEMENT_BEGIN = "--- INÍCIO DO EXTRATO ---\n"
STATEMENT_END = "\n--- FIM DO EXTRATO ---"


def serialize_transactions(transactions: Sequence[Transaction]) -> str:
    return json.dumps([tx.to_record() for tx in transactions], ensure_ascii=False)


def serialize_findings(findings: Sequence[AuditFinding]) -> str:
    return json.dumps(
        [f.model_dump(by_alias=True) for f in findings],
        ensure_ascii=False,
    )


def _chart_text(taxonomy: Taxonomy) -> str:
    return (
        "Plano de contas:\n"
        f"- RECEITAS: {', '.join(sorted(taxonomy.revenue))}\n"
        f"- DESPESAS: {', '.join(sorted(taxonomy.expense))}\n"
        f"- PATRIMONIAIS/TRANSITÓRIAS: {', '.join(sorted(taxonomy.equity_transit))}\n"
    )


# ---- Statement classification ----------------------------------------------------


def build_classification_instructions(
    taxonomy: Taxonomy,
    context: CompanyContext,
    *,
    review_threshold: float,
) -> str:
    """System instructions for extracting and classifying a bank statement."""

    return (
        "Você é um sistema contábil que extrai e classifica transações de extratos "
        "bancários brasileiros.\n"
        f"{context.describe()}\n"
        "Regra principal: transferências entre contas da própria empresa (mesmo CNPJ, "
        "contas conhecidas, 'mesma titularidade', entrada e saída de mesmo valor em datas "
        "próximas) são 'Transferência Interna' e nunca receita ou despesa.\n"
        "Ignore cabeçalhos, rodapés e linhas de saldo. Datas em YYYY-MM-DD (ano corrente "
        "quando omitido). Saídas são negativas e entradas positivas, ponto decimal.\n"
        "Estornos vão para 'Ajustes e Estornos' com revisão obrigatória.\n"
        f"{_chart_text(taxonomy)}"
        "Use exclusivamente as contas listadas. Para cada transação informe "
        "confidenceScore (0 a 1) e needsReview = true quando confidenceScore < "
        f"{review_threshold:g}, a descrição for vaga ou for um estorno.\n"
        "banco: nome do banco ou null. saldoFinal: saldo final do extrato (0 quando "
        "ausente). transacoes: lista vazia quando nada puder ser extraído.\n"
        "Responda apenas com JSON conforme o schema."
    )


def build_statement_text_input(content: str) -> str:
    return f"{STATEMENT_BEGIN}{content}{STATEMENT_END}"


def build_classification_format(taxonomy: Taxonomy) -> ResponseFormatTextJSONSchemaConfigParam:
    accounts = taxonomy.all_accounts()
    if not accounts:
        raise ValueError("taxonomy must contain at least one account")
    return {
        "type": "json_schema",
        "name": "statement_classification",
        "schema": {
            "type": "object",
            "properties": {
                "banco": {"type": ["string", "null"]},
                "saldoFinal": {"type": "number"},
                "transacoes": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "date": {"type": "string"},
                            "description": {"type": "string"},
                            "value": {"type": "number"},
                            "classification": {"type": "string", "enum": accounts},
                            "confidenceScore": {"type": "number", "minimum": 0, "maximum": 1},
                            "needsReview": {"type": "boolean"},
                        },
                        "required": [
                            "date",
                            "description",
                            "value",
                            "classification",
                            "confidenceScore",
                            "needsReview",
                        ],
                        "additionalProperties": False,
                    },
                },
            },
            "required": ["banco", "saldoFinal", "transacoes"],
            "additionalProperties": False,
        },
        "strict": True,
    }


# ---- Audit -----------------------------------------------------------------------


def build_audit_instructions(taxonomy: Taxonomy, context: CompanyContext) -> str:
    return (
        "Você é um auditor contábil sênior. Verifique o equilíbrio da partida dobrada e a "
        "precisão das classificações.\n"
        f"{context.describe()}\n"
        "1. Se a soma dos valores não for zero, reporte um 'error' com a diferença exata e "
        "a causa provável (transferência interna classificada como receita ou despesa).\n"
        "2. Receitas ou despesas que pareçam internas: 'suggestion'.\n"
        "3. Transações duplicadas (data, valor e descrição semelhantes): 'warning'.\n"
        "4. Classificação incompatível com a descrição: 'suggestion' com a conta correta.\n"
        "5. 'Ajustes e Estornos': procure o lançamento original; se encontrado, "
        "'suggestion' para usar a mesma conta, senão 'warning'.\n"
        f"{_chart_text(taxonomy)}"
        "Inclua transactionId quando o problema se referir a uma transação, senão null.\n"
        "Responda apenas com JSON conforme o schema."
    )


def build_audit_input(transactions: Sequence[Transaction]) -> str:
    return f"Transações:\n{TX_BEGIN}{serialize_transactions(transactions)}{TX_END}"


def build_audit_format() -> ResponseFormatTextJSONSchemaConfigParam:
    return {
        "type": "json_schema",
        "name": "audit_findings",
        "schema": {
            "type": "object",
            "properties": {
                "findings": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "type": {"type": "string", "enum": ["error", "warning", "suggestion"]},
                            "message": {"type": "string"},
                            "transactionId": {"type": ["string", "null"]},
                        },
                        "required": ["type", "message", "transactionId"],
                        "additionalProperties": False,
                    },
                }
            },
            "required": ["findings"],
            "additionalProperties": False,
        },
        "strict": True,
    }


# ---- Corrections -----------------------------------------------------------------


def build_corrections_instructions(taxonomy: Taxonomy, context: CompanyContext) -> str:
    return (
        "Você é um auditor contábil sênior. Proponha correções para os problemas "
        "informados que tenham transactionId, priorizando o equilíbrio da partida dobrada.\n"
        f"{context.describe()}\n"
        "Um desequilíbrio costuma ser uma transferência interna mal classificada: "
        "reclassifique para 'Transferência Interna'. Quando houver conta mais específica, "
        "proponha a troca.\n"
        f"{_chart_text(taxonomy)}"
        "Para cada correção informe transactionId, reason (explicação curta) e updates. "
        "Em updates preencha apenas os campos alterados e use null nos demais.\n"
        "Responda apenas com JSON conforme o schema; lista vazia quando nada for necessário."
    )


def build_corrections_input(
    transactions: Sequence[Transaction], findings: Sequence[AuditFinding]
) -> str:
    return (
        f"Transações:\n{TX_BEGIN}{serialize_transactions(transactions)}{TX_END}\n\n"
        f"Problemas:\n{FINDINGS_BEGIN}{serialize_findings(findings)}{FINDINGS_END}"
    )


def build_corrections_format(taxonomy: Taxonomy) -> ResponseFormatTextJSONSchemaConfigParam:
    accounts: list[Any] = [*taxonomy.all_accounts(), None]
    return {
        "type": "json_schema",
        "name": "proposed_corrections",
        "schema": {
            "type": "object",
            "properties": {
                "corrections": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "transactionId": {"type": "string"},
                            "reason": {"type": "string"},
                            "updates": {
                                "type": "object",
                                "properties": {
                                    "date": {"type": ["string", "null"]},
                                    "description": {"type": ["string", "null"]},
                                    "value": {"type": ["number", "null"]},
                                    "classification": {
                                        "type": ["string", "null"],
                                        "enum": accounts,
                                    },
                                },
                                "required": ["date", "description", "value", "classification"],
                                "additionalProperties": False,
                            },
                        },
                        "required": ["transactionId", "reason", "updates"],
                        "additionalProperties": False,
                    },
                }
            },
            "required": ["corrections"],
            "additionalProperties": False,
        },
        "strict": True,
    }


__all__ = [
    "build_audit_format",
    "build_audit_input",
    "build_audit_instructions",
    "build_classification_format",
    "build_classification_instructions",
    "build_corrections_format",
    "build_corrections_input",
    "build_corrections_instructions",
    "build_statement_text_input",
    "serialize_findings",
    "serialize_transactions",
]
