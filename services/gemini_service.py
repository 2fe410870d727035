"""
Gemini Integration Service
Grounded reply generation and one-off summaries for the AI companion
"""
import os
from typing import List, Dict, Any, Optional
import google.generativeai as genai
from google.generativeai.types import HarmCategory, HarmBlockThreshold
from dotenv import load_dotenv
import logging

from services.pii_masking import PIIMaskingService

load_dotenv()

logger = logging.getLogger(__name__)

COMPANION_SYSTEM_PROMPT = """You are the AI companion for the Zentia mental health platform. You provide helpful, empathetic responses based on the user's own wellbeing data.

IMPORTANT GUIDELINES:
- Always respond in English
- Be supportive and empathetic
- If you reference specific data, mention the table name and ID for transparency
- Keep responses concise but informative
- If no relevant data is found, provide general helpful guidance
- Never make medical diagnoses or provide medical advice
- Encourage users to consult healthcare professionals for serious concerns"""


class GeminiService:
    """Service for interacting with the Google Gemini API"""

    def __init__(self, pii_masker: Optional[PIIMaskingService] = None):
        api_key = os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise ValueError("GEMINI_API_KEY environment variable is required")

        genai.configure(api_key=api_key)

        self.model_name = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
        self.pii_masker = pii_masker or PIIMaskingService()

        # Self-harm content must reach the model so it can respond supportively
        self.safety_settings = {
            HarmCategory.HARM_CATEGORY_HARASSMENT: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
            HarmCategory.HARM_CATEGORY_HATE_SPEECH: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
            HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
            HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT: HarmBlockThreshold.BLOCK_ONLY_HIGH,
        }

        try:
            self.model = genai.GenerativeModel(
                model_name=self.model_name,
                safety_settings=self.safety_settings
            )
            logger.info(f"Initialized Gemini model: {self.model_name}")
        except Exception as e:
            logger.error(f"Failed to initialize Gemini model: {e}")
            raise

    def build_companion_instruction(self, preferred_name: str, communication_style: Optional[str] = None) -> str:
        instruction = COMPANION_SYSTEM_PROMPT + f"\n- Address the user as {preferred_name}"
        if communication_style:
            instruction += f"\n- Match this communication style: {communication_style}"
        return instruction

    def generate_grounded_reply(
        self,
        user_message: str,
        grounding_context: str,
        preferred_name: str = "there",
        communication_style: Optional[str] = None,
        history: Optional[List[Dict[str, str]]] = None,
        temperature: float = 0.7,
        max_output_tokens: Optional[int] = 1024,
    ) -> Dict[str, Any]:
        """
        Generate a companion reply grounded on retrieved evidence.

        Args:
            user_message: The user's question
            grounding_context: Evidence block from the response assembler
            preferred_name: How to address the user
            communication_style: Optional style preference
            history: Earlier turns as dicts with 'role' and 'content'
            temperature: Sampling temperature (0.0-1.0)
            max_output_tokens: Maximum tokens in response

        Returns:
            Dictionary with 'content', 'finish_reason' and 'model'

        Raises:
            Exception: If the Gemini call fails or returns no text
        """
        try:
            generation_config = {"temperature": temperature}
            if max_output_tokens:
                generation_config["max_output_tokens"] = max_output_tokens

            model_with_sys = genai.GenerativeModel(
                model_name=self.model_name,
                safety_settings=self.safety_settings,
                system_instruction=self.build_companion_instruction(preferred_name, communication_style)
            )

            formatted_history = [
                {"role": "model" if msg.get("role") == "assistant" else "user",
                 "parts": [self.pii_masker.mask_text(msg.get("content", ""))]}
                for msg in (history or [])
            ]
            chat = model_with_sys.start_chat(history=formatted_history)

            prompt = (
                f"Available context from the database:\n{self.pii_masker.mask_text(grounding_context)}\n\n"
                f"User question: {self.pii_masker.mask_text(user_message)}\n\n"
                "Provide a helpful response based on the available information:"
            )
            response = chat.send_message(prompt, generation_config=generation_config)

            content = response.text
            if not content or not content.strip():
                raise ValueError("Gemini returned an empty response")

            return {
                "content": content,
                "finish_reason": response.candidates[0].finish_reason if response.candidates else "STOP",
                "model": self.model_name,
            }

        except Exception as e:
            logger.error(f"Error generating Gemini response: {e}")
            raise Exception(f"Failed to generate response: {str(e)}")

    def generate_content_sync(self, prompt: str, temperature: float = 0.7) -> str:
        """
        Generate content without conversation history.
        Used for one-off tasks like context summaries.

        Args:
            prompt: The prompt to send to Gemini
            temperature: Sampling temperature (0.0-1.0)

        Returns:
            Generated text content
        """
        try:
            response = self.model.generate_content(
                self.pii_masker.mask_text(prompt),
                generation_config={"temperature": temperature}
            )
            return response.text

        except Exception as e:
            logger.error(f"Error generating sync content: {e}")
            raise Exception(f"Failed to generate content: {str(e)}")


# Global instance (singleton pattern)
_gemini_service_instance = None

def get_gemini_service() -> GeminiService:
    """
    Get or create the global GeminiService instance.

    Returns:
        Shared GeminiService instance
    """
    global _gemini_service_instance
    if _gemini_service_instance is None:
        _gemini_service_instance = GeminiService()
    return _gemini_service_instance
