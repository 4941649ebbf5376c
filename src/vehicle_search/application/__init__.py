"""
Application Layer - Use cases of the conversational search pipeline.

Subpackages:
- session: conversation lifecycle and expiry
- safety: pre-parse gate, rate limiting, abuse monitoring
- understanding: intent classification and entity extraction
- resolution: references, comparatives, refinement
- mapping: entities to typed constraints, concept table
- composition: conflict handling and filter rendering
- search: strategy orchestration, fusion, ranking

The turn-level entry point is ``application.pipeline.ConversationalSearchPipeline``.
"""
