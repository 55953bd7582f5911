"""Itinerary prompt - server-side only, never sent to clients."""

from backend.app.models.metadata import RequestMetadata

MULTI_CITY_INSTRUCTIONS = """
**MULTI-CITY TRIP INSTRUCTIONS:**
- Structure the itinerary by city with clear transitions between them
- Include travel days between cities with transport details (flight times, train durations, bus routes)
- Recommend specific carriers or services between cities with estimated travel times and costs
- Suggest airport/station transfers to city centres and check-in/check-out logistics
- Recommend arrival/departure times that maximise sightseeing
- Keep arrival days lighter to account for travel fatigue
- Add city-specific tips for each destination"""


def _booking_suggestions(affiliate_id: str) -> str:
    return (
        "Generate SPECIFIC booking links with the actual destination name from the itinerary. "
        "Use [LINK] tags for clickable links.\\n\\n"
        "### Flights\\nSearch flights to [DESTINATION]: "
        f"[LINK]Skyscanner|https://www.skyscanner.net/?associateid={affiliate_id}[/LINK] or "
        f"[LINK]Kiwi.com|https://www.kiwi.com/deep?affilid={affiliate_id}[/LINK]\\n\\n"
        "### Hotels\\nBook hotels in [DESTINATION]: "
        "[LINK]Booking.com|https://www.booking.com/searchresults.html"
        f"?aid={affiliate_id}&ss=[DESTINATION][/LINK] or "
        "[LINK]Hotels.com|https://www.hotels.com/search.do"
        f"?affcid={affiliate_id}&destination=[DESTINATION][/LINK]\\n\\n"
        "### Activities\\nFind tours in [DESTINATION]: "
        "[LINK]GetYourGuide|https://www.getyourguide.com/s/"
        f"?partner_id={affiliate_id}&q=[DESTINATION][/LINK] or "
        "[LINK]Viator|https://www.viator.com/searchResults/all"
        f"?pid={affiliate_id}&text=[DESTINATION][/LINK]\\n\\n"
        "IMPORTANT: Replace [DESTINATION] with the PRIMARY city from this itinerary."
    )


def build_itinerary_prompt(
    user_input: str, metadata: RequestMetadata, *, affiliate_id: str
) -> str:
    """Build the full itinerary-generation prompt.

    Args:
        user_input: Sanitized user text
        metadata: Signals extracted from the same text
        affiliate_id: Partner id embedded in booking links

    Returns:
        Prompt text sent upstream
    """
    lines = [
        "Create a travel itinerary in JSON format.",
        "",
        "Requirements:",
        '- Real venue names with specific times (9:00 AM, not "Morning")',
        "- Venue tagging: [VENUE]**VenueName**|https://maps.google.com/?q=VenueName+City[/VENUE]",
        "- Informative descriptions with practical details (what to expect, tips, highlights)",
        "- Include estimated costs, booking tips, and insider knowledge when relevant",
        "- When the user requests a single country, ALL destinations MUST be within that country",
        "- Use the most famous location for an ambiguous destination "
        '(e.g., "Paris" = Paris, France) unless the request says otherwise',
    ]
    if metadata.has_specific_dates:
        lines.append("- Use provided dates in day titles")
    if metadata.is_multi_city:
        lines.append(MULTI_CITY_INSTRUCTIONS)

    lines += [
        "",
        "Return ONLY the JSON object, no markdown.",
        "",
        "JSON Structure:",
        "{",
        '  "title": "Trip title",',
        '  "days": [',
        "    {",
        '      "title": "Day 1: Location",',
        '      "activities": [',
        "        {",
        '          "time": "9:00 AM",',
        '          "description": "Visit [VENUE]**Museum Name**|'
        "https://maps.google.com/?q=Museum+Name+City[/VENUE]. What makes it special, "
        'estimated visit time, and practical tips."',
        "        }",
        "      ],",
        '      "insiderTip": "A specific, actionable local tip for this day\'s location."',
        "    }",
        "  ],",
        f'  "bookingSuggestions": "{_booking_suggestions(affiliate_id)}"',
        "}",
        "",
        "CRITICAL REQUIREMENTS:",
        "- Include 4-6 activities per day (fewer on travel days)",
        "- EVERY activity MUST have a specific time (9:00 AM, 2:30 PM, etc.)",
        "- Each description should be 2-3 sentences with actionable information",
        "- Every day MUST have an insiderTip field",
        "- ALWAYS include bookingSuggestions with the destination name filled in",
        "",
        f'User\'s request: "{user_input}"',
    ]
    return "\n".join(lines)
