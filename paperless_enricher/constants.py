"""Static data constants (prompt templates, default taxonomy)."""

from __future__ import annotations

# --- Basis-Anweisungen (SYSTEM_PROMPT Default) ---
DEFAULT_SYSTEM_PROMPT = (
    "You are a personalized document analyzer. Your task is to analyze documents and extract "
    "relevant information.\n\n"
    "Analyze the document content and extract the following information into a structured JSON object:\n"
    "1. title: Create a concise, meaningful title for the document\n"
    "2. correspondent: Identify the sender/institution but do not include addresses\n"
    "3. tags: Select up to 4 relevant thematic tags\n"
    "4. document_date: Extract the document date (format: YYYY-MM-DD)\n"
    "5. document_type: Determine a precise type that classifies the document (e.g. Invoice, Contract)\n"
    "6. language: Determine the document language (e.g. \"de\" or \"en\")\n\n"
    "Important rules for the analysis:\n"
    "- Tags: maximum 4 tags, in the language of the document, singular nouns, no address data\n"
    "- Title: short and concise, NO ADDRESSES, only key information\n"
    "- Correspondent: the shortest possible name of the sending organization\n"
    "- Date: if several dates are present, use the most relevant one"
)

# Platzhalter im SYSTEM_PROMPT (werden vor allen Zusatzabschnitten ersetzt)
PLACEHOLDER_CUSTOM_FIELDS = "%CUSTOMFIELDS%"
PLACEHOLDER_RESTRICTED_TAGS = "%RESTRICTED_TAGS%"
PLACEHOLDER_RESTRICTED_CORRESPONDENTS = "%RESTRICTED_CORRESPONDENTS%"
PLACEHOLDER_RESTRICTED_DOCUMENT_TYPES = "%RESTRICTED_DOCUMENT_TYPES%"

# --- JSON-Struktur (hilft bei korrupten OCR-Texten) ---
JSON_STRUCTURE_BLOCK = (
    "CRITICAL: You MUST return a JSON object with this EXACT structure, regardless of document quality:\n"
    "{\n"
    '  "title": "string",\n'
    '  "correspondent": "string or null",\n'
    '  "tags": ["array", "of", "strings"],\n'
    '  "document_type": "string",\n'
    '  "document_date": "YYYY-MM-DD or null",\n'
    '  "language": "en/de/es/etc",\n'
    '  "custom_fields": {}\n'
    "}\n"
    "If the document has corrupted text or unclear content, make your best guess but ALWAYS use this JSON structure.\n"
    'Do NOT create alternative JSON formats (like "product", "instructions", "model_number", etc.).\n\n'
)

# --- Restriktionsbloecke ---
RESTRICTIONS_START = "\n--- IMPORTANT RESTRICTIONS ---\n"
RESTRICTIONS_END = "--- END RESTRICTIONS ---\n\n"

TAG_RESTRICTION_BLOCK = (
    "\nTAGS: You MUST select tags ONLY from the following existing tags. Do NOT create new tags.\n"
    "IMPORTANT: Do NOT use literal product names, object names, or document types as tags.\n"
    "For example:\n"
    '  - If the document is about a dishwasher, use "Appliance" and "Kitchen Equipment", NOT "Dishwasher"\n'
    '  - If the document is a manual, use category tags like "Appliance", NOT "Manual" or "User Manual"\n'
    '  - If the document is about a refrigerator, use "Appliance" and "Kitchen Equipment", NOT "Refrigerator"\n'
    "Think about what CATEGORY the document belongs to, not what object is mentioned.\n"
    "Choose 2-4 tags that best categorize the document.\n"
    "Available tags: {names}\n"
)

CORRESPONDENT_RESTRICTION_BLOCK = (
    "\nCORRESPONDENT: You MUST select a correspondent ONLY from the following existing correspondents. "
    "Do NOT create a new correspondent. Choose the ONE that best matches the document:\n"
    "Available correspondents: {names}\n"
)

DOCUMENT_TYPE_RESTRICTION_BLOCK = (
    "\nDOCUMENT TYPE: You MUST select a document type ONLY from the following existing types. "
    "Do NOT create a new type. Choose the ONE that best matches the document:\n"
    "Available document types: {names}\n"
)

# --- Referenzliste (USE_EXISTING_DATA ohne Restriktionen) ---
EXISTING_DATA_BLOCK = (
    "\nPre-existing tags: {tags}\n"
    "Pre-existing correspondents: {correspondents}\n"
    "Pre-existing document types: {document_types}\n\n"
)

# --- Ausgabevorlage (MUST_HAVE_PROMPT) ---
MUST_HAVE_PROMPT = (
    "Return the result EXCLUSIVELY as a JSON object. The Tags, Title and Document_Type MUST be in the "
    "language that is used in the document.\n"
    "IMPORTANT: The custom_fields are optional and can be left out if not needed, only try to fill out "
    "the values if you find a matching information in the document.\n"
    "Do not change the value of field_name, only fill out the values. If the field is about money only "
    "add the number without currency and always use a . for decimal places.\n"
    "{\n"
    '    "title": "xxxxx",\n'
    '    "correspondent": "xxxxxxxx",\n'
    '    "tags": ["Tag1", "Tag2", "Tag3", "Tag4"],\n'
    '    "document_type": "Invoice/Contract/...",\n'
    '    "document_date": "YYYY-MM-DD",\n'
    '    "language": "en/de/es/...",\n'
    "    %CUSTOMFIELDS%\n"
    "}"
)

PLAYGROUND_MUST_HAVE_PROMPT = (
    "\nReturn the result EXCLUSIVELY as a JSON object. The Tags and Title MUST be in the language that "
    "is used in the document.:\n"
    "{\n"
    '    "title": "xxxxx",\n'
    '    "correspondent": "xxxxxxxx",\n'
    '    "tags": ["Tag1", "Tag2", "Tag3", "Tag4"],\n'
    '    "document_date": "YYYY-MM-DD",\n'
    '    "language": "en/de/es/..."\n'
    "}"
)

EXTERNAL_DATA_HEADER = "\n\nAdditional context from external API:\n"
PROMPT_TAGS_HEADER = "\n\nTake these tags and try to match one or more to the document content.\n\n"

TEXT_GENERATION_SYSTEM_PROMPT = (
    "You are a helpful assistant. Generate a clear, concise, and informative response to the "
    "user's question or request."
)

# Separator fuer das Prompt-Protokoll
PROMPT_LOG_SEPARATOR = "=" * 80

# --- Paperless: Matching-Algorithmus "Auto" ---
MATCHING_ALGORITHM_AUTO = 6

# --- Standard-Dokumenttypen (Taxonomie-Import) ---
DEFAULT_DOCUMENT_TYPES = [
    # Financial
    "Invoice", "Receipt", "Bank Statement", "Credit Card Statement", "Investment Statement",
    "Tax Return", "Tax Assessment", "Pay Stub", "Loan Agreement", "Mortgage Document",
    "Insurance Policy", "Insurance Claim", "Donation Receipt", "Expense Report",
    "Financial Statement", "Budget Document", "Pension Document",
    # Legal
    "Contract", "Agreement", "Court Document", "Legal Notice", "Power of Attorney",
    "Will", "Trust Document", "Settlement Agreement", "Lease Agreement",
    "Non-Disclosure Agreement", "Terms of Service",
    # Government & Official
    "Birth Certificate", "Marriage Certificate", "Death Certificate", "Divorce Decree",
    "Passport", "Driver's License", "ID Card", "Visa", "Immigration Document",
    "Social Security Document", "Voter Registration", "Permit", "License",
    "Government Notice", "Tax Form", "Census Document",
    # Medical & Health
    "Medical Record", "Test Result", "Prescription", "Vaccination Record",
    "Health Insurance Card", "Medical Bill", "Referral", "Treatment Plan",
    "Discharge Summary", "Dental Record", "Vision Prescription", "Mental Health Record",
    # Property & Real Estate
    "Property Deed", "Title Document", "Appraisal", "Inspection Report",
    "HOA Document", "Utility Bill", "Property Tax Statement", "Renovation Document",
    "Floor Plan", "Zoning Document",
    # Vehicle
    "Vehicle Registration", "Vehicle Title", "Vehicle Insurance", "Service Record",
    "Repair Receipt", "Emissions Test", "DMV Document", "Purchase Agreement",
    # Education
    "Diploma", "Certificate", "Transcript", "Report Card", "Enrollment Document",
    "Student Loan Document", "Scholarship Document", "Course Material", "Thesis",
    # Employment
    "Employment Contract", "Offer Letter", "Performance Review", "Resume",
    "Reference Letter", "Termination Letter", "Benefits Document",
    "Stock Option Document", "Non-Compete Agreement",
    # Travel
    "Booking Confirmation", "Itinerary", "Travel Insurance", "Hotel Receipt",
    "Flight Ticket", "Travel Visa", "Vaccination Certificate",
    # Business
    "Business License", "Articles of Incorporation", "Operating Agreement",
    "Business Plan", "Partnership Agreement", "Meeting Minutes", "Business Insurance",
    "Trademark Document", "Patent Document",
    # Correspondence
    "Letter", "Email", "Memo", "Notice", "Announcement", "Newsletter",
    # Consumer & Purchases
    "Warranty", "Product Registration", "Return Policy", "Gift Receipt",
    "Membership Document", "Subscription Agreement",
    # Reference
    "Manual", "Guide", "Specification Sheet", "Brochure", "Catalog", "Map", "Chart",
    # Personal
    "Personal Letter", "Diary Entry", "Photo Album Documentation", "Family Record",
    "Genealogy Document", "Pet Record",
]

# --- Standard-Tags (Taxonomie-Import) ---
DEFAULT_TAGS = [
    # Life Domains
    "Personal", "Business", "Family", "Medical", "Financial", "Legal", "Education",
    "Property", "Vehicle", "Travel",
    # Subject Areas
    "Banking", "Insurance", "Retirement", "Investment", "Real Estate", "Healthcare",
    "Dental", "Vision", "Employment", "Taxes", "Utilities", "Automotive", "Government",
    "Immigration",
    # Classification
    "Confidential", "Important", "Reference", "Historical", "Permanent", "Temporary",
    "Original", "Copy", "Draft", "Final",
    # Relationship
    "Self", "Spouse", "Child", "Parent", "Dependent", "Business Partner", "Tenant",
    "Landlord",
    # Financial Categories ("Investment" steht schon unter Subject Areas)
    "Income", "Expense", "Asset", "Liability", "Tax Deductible", "Reimbursable",
    "Charitable",
    # Purpose
    "Record Keeping", "Compliance", "Tax Filing", "Insurance Claim", "Legal Proof",
    "Application", "Renewal", "Cancellation",
    # Specific Topics
    "Home Improvement", "Student Loans", "Mortgage", "Retirement Account",
    "Health Savings Account", "Emergency", "Subscription", "Membership",
    "Professional Development", "Certification", "Estate Planning", "Pet Care",
    # Product/Equipment
    "Appliance", "Electronics", "Computer", "Phone/Mobile", "Camera", "Audio/Video",
    "Kitchen Equipment", "HVAC", "Power Tool", "Garden Equipment", "Home Security",
    "Networking", "Software", "Game Console", "Smart Home", "Furniture",
    "Exercise Equipment", "Musical Instrument",
]
