"""
Prompt templates for the RAG pipeline.

Contains every prompt the pipeline sends to the text-inference service:
query expansion, retrieval routing, relevance judging and answer synthesis.
"""

from typing import Any, Dict, List
from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder

_ROLE_NAMES = {
    "human": "user",
    "ai": "assistant",
    "system": "system",
}


def render_messages(prompt: ChatPromptTemplate, **variables: Any) -> List[Dict[str, str]]:
    """
    Format a prompt template into role/content message dicts.

    Args:
        prompt: Template to format
        **variables: Template variables

    Returns:
        Messages ready for the inference service
    """
    messages = prompt.format_messages(**variables)
    return [
        {"role": _ROLE_NAMES.get(message.type, message.type), "content": message.content}
        for message in messages
    ]


def get_expansion_prompt() -> ChatPromptTemplate:
    """
    Get the query expansion prompt template.

    Returns:
        ChatPromptTemplate producing variations, a hypothetical answer,
        keywords and intent as JSON
    """
    EXPANSION_TEMPLATE = """Analyze and expand this query for better information retrieval.

Query: "{query}"

Tasks:
1. Generate {max_variations} alternative phrasings that ask the same question
2. {hypothetical_task}
3. Extract key search terms (5-10 important keywords)
4. Classify the intent: question, analysis_request, data_lookup, or conversation

Return JSON:
{{
  "variations": ["variation 1", "variation 2"],
  "hypotheticalAnswer": "...",
  "keywords": ["keyword1", "keyword2"],
  "intent": "question"
}}"""

    return ChatPromptTemplate.from_template(EXPANSION_TEMPLATE)


def get_decompose_prompt() -> ChatPromptTemplate:
    """Prompt that splits a multi-part query into sub-queries."""
    DECOMPOSE_TEMPLATE = """Break down this complex query into simpler sub-queries.

Query: "{query}"

Rules:
- If it's a single simple question, return just that question
- If it has multiple parts (e.g., "what is X and how does Y work?"), split into separate questions
- Each sub-query should be independently answerable
- Maximum 5 sub-queries

Return JSON: {{"subQueries": ["query1", "query2"]}}"""

    return ChatPromptTemplate.from_template(DECOMPOSE_TEMPLATE)


def get_hypothetical_answer_prompt() -> ChatPromptTemplate:
    """Prompt for a hypothetical ideal answer (HyDE)."""
    HYDE_TEMPLATE = """Generate a detailed, ideal answer to this query as if you were writing documentation.
Make it factual and comprehensive (3-5 sentences).

Query: "{query}"

Answer:"""

    return ChatPromptTemplate.from_template(HYDE_TEMPLATE)


def get_step_back_prompt() -> ChatPromptTemplate:
    """Prompt for the broader question behind a specific query."""
    STEP_BACK_TEMPLATE = """Given this specific query, what is the broader, more general question it relates to?

Specific query: "{query}"

Return the broader question that would help understand the context.

Example:
Specific: "What are the pricing strategies for a local bakery?"
Broader: "What are common pricing strategies for small retail businesses?"

Return JSON: {{"broaderQuestion": "..."}}"""

    return ChatPromptTemplate.from_template(STEP_BACK_TEMPLATE)


def get_strategy_prompt() -> ChatPromptTemplate:
    """
    Get the retrieval routing prompt template.

    Returns:
        ChatPromptTemplate that classifies whether and where to retrieve
    """
    STRATEGY_TEMPLATE = """Analyze this query and decide retrieval strategy.

Query: "{query}"

Sources: vector (strategic analysis), database (business details)

Return JSON:
{{
  "shouldRetrieve": true,
  "retrievalStrategy": "vector" | "database" | "hybrid" | "none",
  "targetSources": ["source1"],
  "reasoning": "brief explanation"
}}"""

    return ChatPromptTemplate.from_template(STRATEGY_TEMPLATE)


def get_judge_prompt() -> ChatPromptTemplate:
    """
    Get the batch relevance scoring prompt template.

    Returns:
        ChatPromptTemplate scoring numbered documents against a 0-1 rubric
    """
    JUDGE_TEMPLATE = """Score the relevance of each document to the query on a scale of 0-1.

Query: "{query}"

Documents:
{documents}

Return JSON with format:
{{
  "scores": [
    {{"index": 1, "score": 0.95, "reasoning": "brief explanation"}},
    {{"index": 2, "score": 0.82, "reasoning": "brief explanation"}}
  ]
}}

Score 0.9-1.0: Highly relevant, directly answers query
Score 0.7-0.89: Relevant with useful information
Score 0.5-0.69: Somewhat relevant
Score 0-0.49: Not relevant

Return ONLY the JSON, no other text."""

    return ChatPromptTemplate.from_template(JUDGE_TEMPLATE)


def get_pairwise_prompt() -> ChatPromptTemplate:
    """Prompt comparing two documents for relevance."""
    PAIRWISE_TEMPLATE = """Which document is more relevant to the query?

Query: "{query}"

Document A: {doc_a}
Document B: {doc_b}

Return JSON: {{"winner": "A" or "B", "reasoning": "brief explanation"}}"""

    return ChatPromptTemplate.from_template(PAIRWISE_TEMPLATE)


def get_synthesis_prompt() -> ChatPromptTemplate:
    """
    Get the grounded answer synthesis prompt template.

    The system message carries the citation rules, followed by the
    conversation history and the numbered context blocks.

    Returns:
        ChatPromptTemplate for cited answers
    """
    SYSTEM_TEMPLATE = """You are a strategic business advisor powered by retrieval-augmented generation.

YOUR TASK:
- Answer the user's query using ONLY the retrieved context below
- Cite sources using [Source N] notation
- If context is insufficient, acknowledge limitations clearly
- Be concise, actionable, and strategic

CRITICAL RULES:
1. DO NOT fabricate information not in the context
2. DO cite specific sources for claims
3. DO acknowledge when context doesn't fully answer the query
4. DO prioritize high-relevance sources"""

    USER_TEMPLATE = """RETRIEVED CONTEXT:
{context}

USER QUERY: {query}

Provide a clear, well-cited answer:"""

    return ChatPromptTemplate.from_messages([
        ("system", SYSTEM_TEMPLATE),
        MessagesPlaceholder("history", optional=True),
        ("human", USER_TEMPLATE),
    ])
