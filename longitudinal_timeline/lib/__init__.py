"""
Pipeline stages of the longitudinal timeline engine.

- canonical_record / date_resolution / clinical_vocabulary: input model and lookup tables
- event_extractor / clinical_event / treatment_ordinality: Canonical Record -> Events
- timeline_assembler / context_enricher: ordering, month periods, per-event context
- biomarker_trends / imaging_response / treatment_response / disease_trajectory: analytics
- risk_model / care_coordination: outcomes risk and care-delivery views
- export_adapter: json / csv / html / markdown projections
"""
