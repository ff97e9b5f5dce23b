"""Tests for the chat completion client and the sentence annotator."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from subvocab.config import Settings
from subvocab.errors import ModelNotConfiguredError
from subvocab.model_client import ModelClient, VocabularyAnnotator
from subvocab.models import EMPTY_RESPONSE_ERROR, PARSE_ERROR
from tests.conftest import PIECE_OF_CAKE, UBIQUITOUS, analysis_json


class TestBuildMessages:
    def test_two_messages(self, annotator):
        messages = annotator.build_messages("It was a piece of cake.")

        assert [m["role"] for m in messages] == ["system", "user"]

    def test_system_prompt_targets_learner_band(self, annotator):
        system = annotator.build_messages("Hi.")[0]["content"]

        assert "B1-B2" in system
        assert "JSON" in system

    def test_band_follows_configuration(self, model_client):
        annotator = VocabularyAnnotator(
            Settings(user_level_min=5, user_level_max=6), client=model_client
        )

        messages = annotator.build_messages("Hi.")

        assert "C1-C2" in messages[0]["content"]
        assert "level 5-6" in messages[1]["content"]

    def test_user_prompt_embeds_sentence_and_schema(self, annotator):
        user = annotator.build_messages('He said "hello" twice.')[1]["content"]

        assert json.dumps('He said "hello" twice.') in user
        assert '"nativeExpressions"' in user
        assert '"partOfSpeech"' in user
        assert '"similar"' in user


class TestAnnotate:
    @pytest.mark.asyncio
    async def test_valid_response(self, annotator, model_client):
        model_client.complete.return_value = analysis_json(
            "It was everywhere.", words=[UBIQUITOUS], expressions=[PIECE_OF_CAKE]
        )

        analysis = await annotator.annotate("It was everywhere.")

        assert analysis.ok
        assert analysis.words[0].word == "ubiquitous"
        assert analysis.words[0].meanings[0].part_of_speech == "adj."
        assert analysis.native_expressions[0].expression == "a piece of cake"

    @pytest.mark.asyncio
    async def test_sampling_parameters(self, annotator, model_client):
        model_client.complete.return_value = analysis_json("Hi.")

        await annotator.annotate("Hi.")

        kwargs = model_client.complete.call_args.kwargs
        assert kwargs["temperature"] == 0.1
        assert kwargs["max_tokens"] == 1000

    @pytest.mark.asyncio
    async def test_keeps_source_sentence(self, annotator, model_client):
        model_client.complete.return_value = analysis_json("Something the model made up.")

        analysis = await annotator.annotate("The real sentence.")

        assert analysis.text == "The real sentence."

    @pytest.mark.asyncio
    async def test_surrounding_whitespace_is_tolerated(self, annotator, model_client):
        model_client.complete.return_value = "\n  " + analysis_json("Hi.") + "\n"

        analysis = await annotator.annotate("Hi.")

        assert analysis.ok

    @pytest.mark.asyncio
    async def test_markdown_is_a_parse_error(self, annotator, model_client):
        model_client.complete.return_value = "```json\n" + analysis_json("Hi.") + "\n```"

        analysis = await annotator.annotate("Hi.")

        assert analysis.error == PARSE_ERROR
        assert analysis.words == []
        assert analysis.native_expressions == []
        assert analysis.text == "Hi."

    @pytest.mark.asyncio
    async def test_cefr_difficulty_and_null_fields_are_accepted(self, annotator, model_client):
        word = dict(UBIQUITOUS, phonetic=None, difficulty="B2")
        expression = dict(PIECE_OF_CAKE, meaning=None, usage=None)
        model_client.complete.return_value = analysis_json(
            "Hi.", words=[word], expressions=[expression]
        )

        analysis = await annotator.annotate("Hi.")

        assert analysis.ok
        assert analysis.words[0].difficulty == 4
        assert analysis.words[0].phonetic == ""
        assert analysis.native_expressions[0].meaning == ""
        assert analysis.native_expressions[0].usage == ""

    @pytest.mark.asyncio
    async def test_unknown_difficulty_label_is_a_parse_error(self, annotator, model_client):
        word = dict(UBIQUITOUS, difficulty="very hard")
        model_client.complete.return_value = analysis_json("Hi.", words=[word])

        analysis = await annotator.annotate("Hi.")

        assert analysis.error == PARSE_ERROR

    @pytest.mark.asyncio
    async def test_wrong_shape_is_a_parse_error(self, annotator, model_client):
        model_client.complete.return_value = json.dumps(["not", "an", "object"])

        analysis = await annotator.annotate("Hi.")

        assert analysis.error == PARSE_ERROR

    @pytest.mark.asyncio
    async def test_empty_content(self, annotator, model_client):
        model_client.complete.return_value = None

        analysis = await annotator.annotate("Hi.")

        assert analysis.error == EMPTY_RESPONSE_ERROR

    @pytest.mark.asyncio
    async def test_transport_error_is_absorbed(self, annotator, model_client):
        model_client.complete.side_effect = ConnectionError("Connection refused")

        analysis = await annotator.annotate("Hi.")

        assert not analysis.ok
        assert analysis.error == "Connection refused"
        assert analysis.words == []

    @pytest.mark.asyncio
    async def test_blank_sentence_skips_the_model(self, annotator, model_client):
        analysis = await annotator.annotate("   ")

        assert analysis.ok
        assert analysis.words == []
        model_client.complete.assert_not_called()


class TestModelClient:
    def test_configured_requires_api_key(self):
        assert ModelClient(Settings(api_key="k")).configured
        assert not ModelClient(Settings(api_key=None)).configured

    @pytest.mark.asyncio
    async def test_not_configured_raises(self):
        client = ModelClient(Settings(api_key=None))

        with pytest.raises(ModelNotConfiguredError):
            await client.complete([], temperature=0.1, max_tokens=10)

    @pytest.mark.asyncio
    async def test_posts_to_configured_endpoint(self):
        config = Settings(api_key="k", api_model="my-model", api_endpoint="/v2/chat")
        client = ModelClient(config)

        response = MagicMock()
        response.choices = [MagicMock()]
        response.choices[0].message.content = "{}"
        sdk = MagicMock()
        sdk.post = AsyncMock(return_value=response)

        with patch.object(client, "_get_client", return_value=sdk):
            content = await client.complete(
                [{"role": "user", "content": "Hi"}], temperature=0.1, max_tokens=10
            )

        assert content == "{}"
        path = sdk.post.call_args.args[0]
        body = sdk.post.call_args.kwargs["body"]
        assert path == "/v2/chat"
        assert body["model"] == "my-model"
        assert body["temperature"] == 0.1
        assert body["max_tokens"] == 10

    @pytest.mark.asyncio
    async def test_no_choices(self):
        client = ModelClient(Settings(api_key="k"))
        sdk = MagicMock()
        sdk.post = AsyncMock(return_value=MagicMock(choices=[]))

        with patch.object(client, "_get_client", return_value=sdk):
            assert await client.complete([], temperature=0.1, max_tokens=10) is None

    def test_sdk_client_disables_retries(self):
        client = ModelClient(Settings(api_key="k", api_base_url="https://example.test/v1"))

        sdk = client._get_client()

        assert sdk.max_retries == 0
        assert str(sdk.base_url).startswith("https://example.test/v1")
        assert client._get_client() is sdk
