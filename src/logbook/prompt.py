from .models import GenerationRequest, UserProfile

_NOT_SPECIFIED = "Not specified"


def build_prompt(request: GenerationRequest) -> str:
    """Render the logbook-generation prompt sent to every provider.

    The prompt asks for a bare JSON object so the same parser handles both
    providers' replies.
    """
    profile = request.user_profile or UserProfile()
    course = profile.course or _NOT_SPECIFIED

    return f"""You are an AI assistant helping a SIWES (Students Industrial Work Experience Scheme) student create a professional logbook entry.

Student Information:
- Name: {profile.full_name or "Student"}
- Course: {course}
- Institution: {profile.institution or _NOT_SPECIFIED}
- Company: {profile.company_name or _NOT_SPECIFIED}
- Department: {profile.department or _NOT_SPECIFIED}
- Industry: {profile.industry_type or _NOT_SPECIFIED}

Week Details:
- Week Number: {request.week_number}
- Date Range: {request.start_date} to {request.end_date}
- Activities Summary: {request.activities}

Please generate a professional SIWES logbook entry with the following structure:

1. Week Summary (2-3 sentences describing the overall focus of the week)
2. Daily Breakdown (5 working days, Monday to Friday, with specific activities for each day)
3. Skills Developed (list of technical and soft skills gained)
4. Challenges Faced (difficulties encountered and how they were addressed)
5. Learning Outcomes (key takeaways and knowledge gained)

Requirements:
- Use professional, formal language appropriate for academic assessment
- Make activities specific and show progression throughout the week
- Use terminology relevant to the student's field of study ({course if profile.course else "the specified course"})
- Tailor the content to the student's discipline, department and industry
- Do not assume a technology-related field unless one is specified

Return ONLY a valid JSON object with these exact keys:
{{
  "weekSummary": "string",
  "dailyActivities": [
    {{"day": "string", "date": "string", "activities": "string"}}
  ],
  "skillsDeveloped": ["string"],
  "challengesFaced": "string",
  "learningOutcomes": "string"
}}"""
