from typing import Any, Dict, List


DEFAULT_SERVICES: List[Dict[str, Any]] = [
    {
        "name": "Credit Analysis & Improvement Plan",
        "slug": "credit-analysis",
        "description": "Comprehensive credit analysis with personalized improvement plan",
        "base_price": 997.00,
        "annual_revenue_target": 12_800_000.00,
        "service_category": "financial",
    },
    {
        "name": "Loan Optimization & Acquisition",
        "slug": "loan-optimization",
        "description": "Loan optimization and acquisition with lender matching",
        "base_price": 2500.00,
        "annual_revenue_target": 8_400_000.00,
        "service_category": "financial",
    },
    {
        "name": "Financial Preparation & Lender Matching",
        "slug": "financial-preparation",
        "description": "Financial preparation and strategic lender matching",
        "base_price": 1500.00,
        "annual_revenue_target": 5_400_000.00,
        "service_category": "financial",
    },
    {
        "name": "Vehicle Finance Solutions",
        "slug": "vehicle-finance",
        "description": "Vehicle financing solutions with competitive rates",
        "base_price": 1200.00,
        "annual_revenue_target": 10_100_000.00,
        "service_category": "financial",
    },
    {
        "name": "Nationwide Vehicle Transport",
        "slug": "vehicle-transport",
        "description": "Nationwide vehicle transport with insurance coverage",
        "base_price": 1200.00,
        "annual_revenue_target": 7_200_000.00,
        "service_category": "logistics",
    },
    {
        "name": "Parts Acquisition & Sourcing",
        "slug": "parts-sourcing",
        "description": "Parts acquisition and sourcing with quality guarantee",
        "base_price": 0.00,
        "markup_percentage": 25.00,
        "annual_revenue_target": 2_700_000.00,
        "service_category": "parts",
    },
    {
        "name": "Elite Vehicle Purchase Solutions",
        "slug": "vehicle-purchase",
        "description": "Vehicle purchase assistance with negotiation and inspection",
        "base_price": 0.00,
        "markup_percentage": 3.00,
        "annual_revenue_target": 3_000_000.00,
        "service_category": "purchase",
    },
    {
        "name": "Vehicle Consignment Services",
        "slug": "vehicle-consignment",
        "description": "Vehicle consignment with marketing and sales support",
        "base_price": 0.00,
        "markup_percentage": 7.00,
        "annual_revenue_target": 2_800_000.00,
        "service_category": "sales",
    },
    {
        "name": "Vehicle Reconditioning & Diagnostics",
        "slug": "vehicle-reconditioning",
        "description": "Vehicle reconditioning and diagnostic services",
        "base_price": 4200.00,
        "annual_revenue_target": 6_800_000.00,
        "service_category": "maintenance",
    },
    {
        "name": "DMV Concierge Services",
        "slug": "dmv-concierge",
        "description": "DMV concierge handling registration and title needs",
        "base_price": 550.00,
        "annual_revenue_target": 2_500_000.00,
        "service_category": "administrative",
    },
    {
        "name": "Legal Consultation & Attorney Network",
        "slug": "legal-consultation",
        "description": "Legal consultation with a specialized attorney network",
        "base_price": 1700.00,
        "annual_revenue_target": 1_700_000.00,
        "service_category": "legal",
    },
    {
        "name": "Business Formation & Launch Support",
        "slug": "business-formation",
        "description": "Business formation and launch support",
        "base_price": 2500.00,
        "annual_revenue_target": 4_000_000.00,
        "service_category": "business",
    },
    {
        "name": "Specialized Problem Resolution",
        "slug": "problem-resolution",
        "description": "Resolution of complex automotive and financial issues",
        "base_price": 3500.00,
        "annual_revenue_target": 5_900_000.00,
        "service_category": "support",
    },
    {
        "name": "Vehicle Inspection Services",
        "slug": "vehicle-inspection",
        "description": "Professional vehicle inspections with detailed reports",
        "base_price": 775.00,
        "annual_revenue_target": 21_800_000.00,
        "service_category": "inspection",
    },
]


# Services are referenced by slug; the seeder resolves them to ids.
DEFAULT_CASCADE_RULES: List[Dict[str, Any]] = [
    # Credit analysis
    {
        "entry_service": "credit-analysis",
        "triggered_service": "vehicle-finance",
        "conversion_rate": 0.84,
        "priority": 1,
        "conditions": {"min_credit_score": 500},
    },
    {
        "entry_service": "credit-analysis",
        "triggered_service": "vehicle-transport",
        "conversion_rate": 0.76,
        "priority": 2,
        "conditions": {"vehicle_purchase_intent": True},
    },
    {
        "entry_service": "credit-analysis",
        "triggered_service": "loan-optimization",
        "conversion_rate": 0.68,
        "priority": 3,
        "conditions": {"credit_score_improvement_needed": True},
    },
    # Vehicle purchase
    {
        "entry_service": "vehicle-purchase",
        "triggered_service": "vehicle-finance",
        "conversion_rate": 0.92,
        "priority": 1,
        "conditions": {"financing_needed": True},
    },
    {
        "entry_service": "vehicle-purchase",
        "triggered_service": "vehicle-inspection",
        "conversion_rate": 0.85,
        "priority": 1,
        "conditions": {},
    },
    {
        "entry_service": "vehicle-purchase",
        "triggered_service": "vehicle-reconditioning",
        "conversion_rate": 0.68,
        "priority": 2,
        "conditions": {"vehicle_condition_fair_or_below": True},
    },
    # Business formation
    {
        "entry_service": "business-formation",
        "triggered_service": "loan-optimization",
        "conversion_rate": 0.71,
        "priority": 1,
        "conditions": {"business_financing_needed": True},
    },
    {
        "entry_service": "business-formation",
        "triggered_service": "legal-consultation",
        "conversion_rate": 0.89,
        "priority": 1,
        "conditions": {"legal_structure_complex": True},
    },
    # Vehicle finance
    {
        "entry_service": "vehicle-finance",
        "triggered_service": "vehicle-inspection",
        "conversion_rate": 0.81,
        "priority": 1,
        "conditions": {"min_vehicle_value": 10_000},
    },
    # Vehicle inspection
    {
        "entry_service": "vehicle-inspection",
        "triggered_service": "vehicle-reconditioning",
        "conversion_rate": 0.64,
        "priority": 1,
        "conditions": {"vehicle_condition_fair_or_below": True},
    },
    # Problem resolution
    {
        "entry_service": "problem-resolution",
        "triggered_service": "credit-analysis",
        "conversion_rate": 0.69,
        "priority": 2,
        "conditions": {"credit_score_improvement_needed": True},
    },
]
